from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase
from rest_framework.test import APIRequestFactory, force_authenticate

from orders.models import Order
from services.dispatch.tests import DispatchTestMixin
from .models import TransportOffer
from .views import (
	accept_transport_offer,
	counter_transport_offer,
	decline_transport_offer,
	list_transport_offers,
)


class TransportOfferApiTests(DispatchTestMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.factory = APIRequestFactory()
		self.records = self.dispatch()
		self.primary_offer, self.secondary_offer, self.tertiary_offer = self.records

		patcher = patch('services.dispatch.scheduler._dispatch_scheduler', self.scheduler)
		patcher.start()
		self.addCleanup(patcher.stop)

	def post(self, view, user, offer, data=None):
		request = self.factory.post('/api/transport-offers/%s/' % offer.offer_id, data or {}, format='json')
		force_authenticate(request, user=user)
		with self.captureOnCommitCallbacks(execute=True):
			return view(request, offer_id=offer.offer_id)

	def get_list(self, user, query=''):
		request = self.factory.get('/api/transport-offers/' + query)
		force_authenticate(request, user=user)
		return list_transport_offers(request)

	def test_accept_returns_updated_offer(self):
		response = self.post(accept_transport_offer, self.primary, self.primary_offer)

		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.data['success'])
		data = response.data['data']
		self.assertEqual(data['offerId'], str(self.primary_offer.offer_id))
		self.assertEqual(data['status'], 'accepted')
		self.assertFalse(data['isActive'])
		self.assertEqual(data['farmer']['fullName'], 'Ama Mensah')
		self.assertEqual(data['listing']['name'], 'Yam tubers')

		self.order.refresh_from_db()
		self.assertEqual(self.order.transporter, self.primary)

	def test_decline_returns_message_and_escalates(self):
		response = self.post(decline_transport_offer, self.primary, self.primary_offer, {'reason': 'Too far'})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data, {'success': True, 'message': 'Transport request declined.'})
		self.secondary_offer.refresh_from_db()
		self.assertTrue(self.secondary_offer.is_active)

	def test_decline_without_body(self):
		response = self.post(decline_transport_offer, self.primary, self.primary_offer)

		self.assertEqual(response.status_code, 200)
		self.primary_offer.refresh_from_db()
		self.assertIsNone(self.primary_offer.decline_reason)

	def test_error_taxonomy_at_the_boundary(self):
		cases = [
			(self.secondary, self.primary_offer, 403, 'forbidden'),
			(self.secondary, self.secondary_offer, 409, 'offer_not_active'),
		]
		for user, offer, status_code, error in cases:
			response = self.post(accept_transport_offer, user, offer)
			self.assertEqual(response.status_code, status_code)
			self.assertEqual(response.data['success'], False)
			self.assertEqual(response.data['error'], error)
			self.assertTrue(response.data['message'])

		self.post(accept_transport_offer, self.primary, self.primary_offer)
		response = self.post(accept_transport_offer, self.primary, self.primary_offer)
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'already_responded')
		self.assertEqual(response.data['message'], 'This offer was already handled.')

	def test_unknown_offer_not_found(self):
		missing = TransportOffer(offer_id='5d9a4a86-4c55-4d3f-9f1e-1f7f0f0f0f0f')

		response = self.post(accept_transport_offer, self.primary, missing)

		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['error'], 'offer_not_found')

	def test_farmer_cannot_use_offer_endpoints(self):
		response = self.post(accept_transport_offer, self.farmer, self.primary_offer)

		self.assertEqual(response.status_code, 403)
		self.primary_offer.refresh_from_db()
		self.assertEqual(self.primary_offer.status, 'pending')

	def test_counter_offer(self):
		response = self.post(counter_transport_offer, self.primary, self.primary_offer, {'counterFee': '310.00'})

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['data']['counterFee'], '310.00')
		self.assertEqual(response.data['data']['status'], 'pending')
		self.assertEqual(len(self.notifier.events_for(self.farmer.id, 'offer_countered')), 1)

	def test_counter_offer_validation(self):
		response = self.post(counter_transport_offer, self.primary, self.primary_offer, {'counterFee': '0'})

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'validation_error')
		self.assertIn('counterFee', response.data['errors'])

	def test_list_is_scoped_to_caller(self):
		response = self.get_list(self.secondary)

		self.assertEqual(response.status_code, 200)
		offers = response.data['data']['offers']
		self.assertEqual(len(offers), 1)
		self.assertEqual(offers[0]['offerId'], str(self.secondary_offer.offer_id))
		self.assertEqual(offers[0]['transporterId'], self.secondary.id)
		# Waiting behind the primary transporter
		self.assertFalse(offers[0]['isActive'])
		self.assertIsNotNone(offers[0]['sentToPrimaryAt'])
		self.assertIsNone(offers[0]['sentToSecondaryAt'])
		self.assertIsNone(offers[0]['sentToTertiaryAt'])

	def test_list_shows_tier_activation_times(self):
		self.post(decline_transport_offer, self.primary, self.primary_offer)

		offers = self.get_list(self.secondary).data['data']['offers']

		self.assertTrue(offers[0]['isActive'])
		self.assertIsNotNone(offers[0]['sentToSecondaryAt'])

	def test_list_status_filter(self):
		self.post(decline_transport_offer, self.primary, self.primary_offer)

		pending = self.get_list(self.primary, '?status=pending').data['data']['offers']
		declined = self.get_list(self.primary, '?status=declined').data['data']['offers']

		self.assertEqual(pending, [])
		self.assertEqual(len(declined), 1)
		self.assertEqual(declined[0]['status'], 'declined')

	def test_list_rejects_unknown_status(self):
		response = self.get_list(self.primary, '?status=bogus')

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'validation_error')

	def test_list_spans_orders(self):
		other_order = Order.objects.create(
			farmer=self.farmer,
			pickup_location='Tamale',
			delivery_location='Accra',
			proposed_transport_cost=Decimal('400.00')
		)
		with self.captureOnCommitCallbacks(execute=True):
			self.scheduler.create_dispatch(other_order.id, [self.secondary.id], cost=Decimal('400.00'))

		offers = self.get_list(self.secondary).data['data']['offers']

		self.assertEqual({offer['orderId'] for offer in offers}, {self.order.id, other_order.id})
		self.assertIsNone(next(o for o in offers if o['orderId'] == other_order.id)['listing'])

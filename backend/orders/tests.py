from decimal import Decimal
from unittest.mock import patch

from django.test import TestCase, override_settings
from rest_framework.test import APIRequestFactory, force_authenticate

from accounts.models import User
from services.dispatch.ranking import AvailableTransporterRanking
from services.dispatch.tests import DispatchTestMixin
from transport.models import TransportOffer
from transporters.models import TransporterProfile
from .models import Order
from .services import OrderService
from .views import assign_transporter, order_dispatch


class AssignTransporterApiTests(DispatchTestMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.factory = APIRequestFactory()

		patcher = patch('services.dispatch.scheduler._dispatch_scheduler', self.scheduler)
		patcher.start()
		self.addCleanup(patcher.stop)

	def assign(self, data, user=None, order=None):
		order = order or self.order
		request = self.factory.post('/api/orders/%d/assign-transporter/' % order.id, data, format='json')
		force_authenticate(request, user=user or self.farmer)
		with self.captureOnCommitCallbacks(execute=True):
			return assign_transporter(request, order_id=order.id)

	def test_assign_ranked_transporters(self):
		response = self.assign({
			'primaryTransporterId': self.primary.id,
			'secondaryTransporterId': self.secondary.id,
			'tertiaryTransporterId': self.tertiary.id,
			'transportCost': '250.00',
		})

		self.assertEqual(response.status_code, 201)
		self.assertTrue(response.data['success'])
		offers = response.data['data']['offers']
		self.assertEqual([o['tier'] for o in offers], ['primary', 'secondary', 'tertiary'])
		self.assertEqual([o['isActive'] for o in offers], [True, False, False])
		self.assertEqual(offers[0]['transporter']['id'], self.primary.id)
		self.assertEqual(response.data['data']['order']['status'], 'awaiting_transport')
		self.assertEqual(len(self.notifier.events_for(self.primary.id, 'new_offer')), 1)
		self.assertEqual(self.notifier.events_for(self.secondary.id), [])

	def test_primary_only(self):
		response = self.assign({'primaryTransporterId': self.primary.id, 'transportCost': '200'})

		self.assertEqual(response.status_code, 201)
		self.assertEqual(TransportOffer.objects.filter(order=self.order).count(), 1)

	def test_primary_is_required(self):
		response = self.assign({'secondaryTransporterId': self.secondary.id, 'transportCost': '250.00'})

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'validation_error')
		self.assertIn('primaryTransporterId', response.data['errors'])

	def test_tier_cannot_be_skipped(self):
		response = self.assign({
			'primaryTransporterId': self.primary.id,
			'tertiaryTransporterId': self.tertiary.id,
			'transportCost': '250.00',
		})

		self.assertEqual(response.status_code, 400)
		self.assertIn('tertiaryTransporterId', response.data['errors'])
		self.assertEqual(TransportOffer.objects.count(), 0)

	def test_same_transporter_twice_rejected(self):
		response = self.assign({
			'primaryTransporterId': self.primary.id,
			'secondaryTransporterId': self.primary.id,
			'transportCost': '250.00',
		})

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'validation_error')

	def test_minimum_fee(self):
		response = self.assign({'primaryTransporterId': self.primary.id, 'transportCost': '100.00'})

		self.assertEqual(response.status_code, 400)
		self.assertIn('transportCost', response.data['errors'])

	@override_settings(TRANSPORT_MINIMUM_FEE='50')
	def test_minimum_fee_is_configurable(self):
		response = self.assign({'primaryTransporterId': self.primary.id, 'transportCost': '100.00'})

		self.assertEqual(response.status_code, 201)

	def test_non_transporter_candidate(self):
		buyer = User.objects.create_user(username='buyer', password='buy1234', role='buyer', phone_number='3')

		response = self.assign({'primaryTransporterId': buyer.id, 'transportCost': '250.00'})

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.data['error'], 'invalid_candidates')

	def test_other_farmers_order_not_found(self):
		other_farmer = User.objects.create_user(username='farmer_two', password='farm1234', role='farmer', phone_number='4')

		response = self.assign(
			{'primaryTransporterId': self.primary.id, 'transportCost': '250.00'},
			user=other_farmer,
		)

		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.data['error'], 'order_not_found')

	def test_transporter_cannot_assign(self):
		response = self.assign(
			{'primaryTransporterId': self.secondary.id, 'transportCost': '250.00'},
			user=self.primary,
		)

		self.assertEqual(response.status_code, 403)

	def test_second_assignment_while_dispatching(self):
		self.assign({'primaryTransporterId': self.primary.id, 'transportCost': '250.00'})

		response = self.assign({'primaryTransporterId': self.secondary.id, 'transportCost': '250.00'})

		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.data['error'], 'dispatch_exists')


class OrderDispatchApiTests(DispatchTestMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.factory = APIRequestFactory()

		self.scheduler.ranking = AvailableTransporterRanking()
		patcher = patch('services.dispatch.scheduler._dispatch_scheduler', self.scheduler)
		patcher.start()
		self.addCleanup(patcher.stop)

	def call(self, method, user=None):
		request = getattr(self.factory, method)('/api/orders/%d/dispatch/' % self.order.id)
		force_authenticate(request, user=user or self.farmer)
		with self.captureOnCommitCallbacks(execute=True):
			return order_dispatch(request, order_id=self.order.id)

	def test_idle_before_dispatch(self):
		response = self.call('get')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.data['data']['state'], 'idle')
		self.assertEqual(response.data['data']['offers'], [])

	def test_status_follows_escalation(self):
		records = self.dispatch()
		self.act('decline', records[0].offer_id, self.primary.id)

		data = self.call('get').data['data']

		self.assertEqual(data['state'], 'dispatching')
		self.assertEqual(data['activeTier'], 'secondary')
		self.assertEqual(data['cycle'], 1)
		self.assertIsNotNone(data['offers'][1]['sentToSecondaryAt'])

	def test_auto_dispatch_ranks_available_transporters(self):
		response = self.call('post')

		self.assertEqual(response.status_code, 201)
		data = response.data['data']
		self.assertEqual(data['state'], 'dispatching')
		self.assertEqual(data['activeTier'], 'primary')
		self.assertEqual(data['offers'][0]['transporterId'], self.primary.id)

	def test_auto_dispatch_without_transporters(self):
		TransporterProfile.objects.update(status='offline')

		response = self.call('post')

		self.assertEqual(response.status_code, 422)
		self.assertEqual(response.data['error'], 'no_candidates')
		self.assertEqual(response.data['message'], 'No transport available for this order.')

	def test_assigned_after_accept(self):
		records = self.dispatch()
		self.act('accept', records[0].offer_id, self.primary.id)

		data = self.call('get').data['data']

		self.assertEqual(data['state'], 'assigned')
		self.assertEqual(data['order']['transporterId'], self.primary.id)
		self.assertEqual(data['order']['transportCost'], '250.00')


class OrderServiceTests(TestCase):
	def setUp(self):
		self.farmer = User.objects.create_user(username='farmer', password='farm1234', role='farmer', phone_number='0')
		self.first = User.objects.create_user(username='first', password='x', role='transporter', phone_number='1')
		self.second = User.objects.create_user(username='second', password='x', role='transporter', phone_number='2')
		self.order = Order.objects.create(
			farmer=self.farmer,
			pickup_location='Techiman',
			delivery_location='Kumasi'
		)
		self.service = OrderService()

	def test_assignment_is_write_once(self):
		self.service.mark_assigned(self.order.id, self.first.id, Decimal('250.00'))
		self.service.mark_assigned(self.order.id, self.second.id, Decimal('300.00'))

		self.order.refresh_from_db()
		self.assertEqual(self.order.transporter, self.first)
		self.assertEqual(self.order.transport_cost, Decimal('250.00'))
		self.assertIsNotNone(self.order.assigned_at)

	def test_unfulfilled_does_not_override_assignment(self):
		self.service.mark_assigned(self.order.id, self.first.id)
		self.service.mark_unfulfilled(self.order.id)

		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'transporter_assigned')

from datetime import timedelta
from decimal import Decimal
from io import StringIO
from types import SimpleNamespace
from unittest.mock import Mock, patch

from django.core.exceptions import ImproperlyConfigured
from django.core.management import call_command
from django.db import OperationalError
from django.test import TestCase, SimpleTestCase, override_settings
from django.utils import timezone

from accounts.models import User
from orders.models import Order
from orders.services import OrderService
from transport.models import TransportOffer
from transporters.models import TransporterProfile

from . import (
	AlreadyRespondedError,
	ConflictError,
	DispatchExistsError,
	DispatchScheduler,
	ForbiddenError,
	InvalidCandidatesError,
	NoCandidatesError,
	NotActiveError,
	OfferNotFoundError,
	OfferStore,
	OrderNotFoundError,
	RankedCandidate,
	derive_dispatch_state,
)
from .gateways import LoggingNotificationGateway, get_notification_gateway
from .ranking import AvailableTransporterRanking
from .tiers import get_tier_sequence
from .timers import CeleryOfferTimers


class RecordingNotifier:
	"""Notification gateway double that keeps every event it is given."""

	def __init__(self):
		self.events = []

	def notify(self, recipient_id, event_type, payload):
		self.events.append((recipient_id, event_type, payload))
		return True

	def events_for(self, recipient_id, event_type=None):
		return [
			event for event in self.events
			if event[0] == recipient_id and (event_type is None or event[1] == event_type)
		]


class FakeTimers:
	def __init__(self):
		self.scheduled = []
		self.cancelled = []

	def schedule(self, offer):
		self.scheduled.append(offer.offer_id)
		return 'task-%s' % offer.offer_id

	def cancel(self, offer):
		self.cancelled.append(offer.offer_id)


class DispatchTestMixin:
	"""Farmer, three available transporters, one order and a scheduler wired to doubles."""

	def setUp(self):
		self.farmer = User.objects.create_user(
			username='farmer',
			password='farm1234',
			role='farmer',
			full_name='Ama Mensah',
			phone_number='0240000000'
		)
		self.transporters = []
		for index, rating in enumerate(['4.90', '4.50', '4.10'], start=1):
			user = User.objects.create_user(
				username='transporter_%d' % index,
				password='truck1234',
				role='transporter',
				phone_number='024000000%d' % index
			)
			TransporterProfile.objects.create(
				user=user,
				vehicle_type='Pickup',
				status='available',
				rating=Decimal(rating),
				completed_deliveries=10 * index
			)
			self.transporters.append(user)
		self.primary, self.secondary, self.tertiary = self.transporters

		self.order = Order.objects.create(
			farmer=self.farmer,
			listing_reference='LST-001',
			listing_name='Yam tubers',
			pickup_location='Techiman',
			delivery_location='Kumasi',
			proposed_transport_cost=Decimal('250.00')
		)

		self.notifier = RecordingNotifier()
		self.timers = FakeTimers()
		self.orders = Mock(wraps=OrderService())
		self.store = OfferStore()
		self.scheduler = DispatchScheduler(
			store=self.store,
			notifier=self.notifier,
			orders=self.orders,
			timers=self.timers,
			tiers=('primary', 'secondary', 'tertiary'),
		)

	def dispatch(self, transporters=None, cost='250.00'):
		transporters = self.transporters if transporters is None else transporters
		with self.captureOnCommitCallbacks(execute=True):
			return self.scheduler.create_dispatch(
				self.order.id,
				[user.id for user in transporters],
				cost=Decimal(cost)
			)

	def act(self, action, *args, **kwargs):
		"""Call a scheduler method and run its after-commit side effects."""
		with self.captureOnCommitCallbacks(execute=True):
			return getattr(self.scheduler, action)(*args, **kwargs)

	def offers(self):
		return list(TransportOffer.objects.filter(order=self.order).order_by('dispatch_cycle', 'tier_index'))


class CreateDispatchTests(DispatchTestMixin, TestCase):
	def test_create_dispatch_activates_only_primary(self):
		records = self.dispatch()

		self.assertEqual([r.tier for r in records], ['primary', 'secondary', 'tertiary'])
		offers = self.offers()
		self.assertTrue(all(offer.status == 'pending' for offer in offers))
		self.assertEqual([offer.is_active for offer in offers], [True, False, False])
		self.assertIsNotNone(offers[0].activated_at)
		self.assertIsNone(offers[1].activated_at)
		self.assertIsNone(offers[2].activated_at)
		self.assertEqual(offers[0].transport_cost, Decimal('250.00'))

		self.assertEqual(self.timers.scheduled, [offers[0].offer_id])
		self.assertEqual(len(self.notifier.events), 1)
		recipient, event_type, payload = self.notifier.events[0]
		self.assertEqual((recipient, event_type), (self.primary.id, 'new_offer'))
		self.assertEqual(payload['offerId'], str(offers[0].offer_id))
		self.assertEqual(payload['tier'], 'primary')

		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'awaiting_transport')

	def test_no_candidates_writes_nothing(self):
		with self.assertRaises(NoCandidatesError):
			self.scheduler.create_dispatch(self.order.id, [], cost=Decimal('250.00'))

		self.assertEqual(TransportOffer.objects.count(), 0)
		self.assertEqual(self.notifier.events, [])
		self.assertEqual(self.timers.scheduled, [])

	def test_fewer_candidates_than_tiers(self):
		records = self.dispatch(transporters=[self.primary, self.secondary])

		self.assertEqual([r.tier for r in records], ['primary', 'secondary'])

	def test_duplicate_candidate_rejected(self):
		with self.assertRaises(InvalidCandidatesError):
			self.dispatch(transporters=[self.primary, self.primary])
		self.assertEqual(TransportOffer.objects.count(), 0)

	def test_more_candidates_than_tiers_rejected(self):
		extra = User.objects.create_user(username='extra', password='x', role='transporter', phone_number='1')

		with self.assertRaises(InvalidCandidatesError):
			self.dispatch(transporters=self.transporters + [extra])

	def test_non_transporter_candidate_rejected(self):
		with self.assertRaises(InvalidCandidatesError):
			self.dispatch(transporters=[self.primary, self.farmer])

	def test_missing_cost_rejected(self):
		with self.assertRaises(InvalidCandidatesError):
			self.scheduler.create_dispatch(self.order.id, [self.primary.id])

	def test_ranked_candidates_carry_their_own_cost(self):
		with self.captureOnCommitCallbacks(execute=True):
			records = self.scheduler.create_dispatch(self.order.id, [
				RankedCandidate(self.primary.id, Decimal('300.00')),
				RankedCandidate(self.secondary.id, Decimal('280.00')),
			])

		self.assertEqual([r.transport_cost for r in records], [Decimal('300.00'), Decimal('280.00')])

	def test_unknown_order(self):
		with self.assertRaises(OrderNotFoundError):
			self.scheduler.create_dispatch(999999, [self.primary.id], cost=Decimal('250.00'))

	def test_second_dispatch_while_dispatching_rejected(self):
		self.dispatch()

		with self.assertRaises(DispatchExistsError):
			self.dispatch()
		self.assertEqual(TransportOffer.objects.count(), 3)

	def test_new_cycle_allowed_after_exhaustion(self):
		records = self.dispatch(transporters=[self.primary])
		self.act('decline', records[0].offer_id, self.primary.id)

		second = self.dispatch(transporters=[self.secondary, self.tertiary])

		self.assertEqual({r.dispatch_cycle for r in second}, {2})
		self.assertEqual(self.scheduler.dispatch_status(self.order.id).state, 'dispatching')
		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'awaiting_transport')

	def test_no_new_cycle_after_assignment(self):
		records = self.dispatch()
		self.act('accept', records[0].offer_id, self.primary.id)

		with self.assertRaises(DispatchExistsError):
			self.dispatch(transporters=[self.secondary])

	def test_dispatch_order_uses_ranking_provider(self):
		self.scheduler.ranking = AvailableTransporterRanking()

		with self.captureOnCommitCallbacks(execute=True):
			records = self.scheduler.dispatch_order(self.order.id)

		# Highest rating first, priced at the order's proposed cost
		self.assertEqual([r.transporter_id for r in records], [t.id for t in self.transporters])
		self.assertTrue(all(r.transport_cost == Decimal('250.00') for r in records))

	def test_dispatch_order_without_available_transporters(self):
		TransporterProfile.objects.update(status='offline')
		self.scheduler.ranking = AvailableTransporterRanking()

		with self.assertRaises(NoCandidatesError):
			self.scheduler.dispatch_order(self.order.id)
		self.assertEqual(TransportOffer.objects.count(), 0)


class AcceptTests(DispatchTestMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.records = self.dispatch()
		self.notifier.events.clear()

	def test_primary_accept_supersedes_every_other_tier(self):
		offer = self.act('accept', self.records[0].offer_id, self.primary.id)

		self.assertEqual(offer.status, 'accepted')
		self.assertFalse(offer.is_active)
		self.assertEqual(offer.resolved_by, 'transporter')

		primary, secondary, tertiary = self.offers()
		for sibling in (secondary, tertiary):
			self.assertEqual(sibling.status, 'declined')
			self.assertFalse(sibling.is_active)
			self.assertEqual(sibling.resolved_by, 'superseded')

		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'transporter_assigned')
		self.assertEqual(self.order.transporter, self.primary)
		self.assertEqual(self.order.transport_cost, Decimal('250.00'))
		self.orders.mark_assigned.assert_called_once_with(self.order.id, self.primary.id, Decimal('250.00'))

		self.assertIn(primary.offer_id, self.timers.cancelled)
		self.assertEqual(len(self.notifier.events_for(self.farmer.id, 'transporter_assigned')), 1)
		self.assertEqual(len(self.notifier.events_for(self.secondary.id, 'offer_withdrawn')), 1)
		self.assertEqual(len(self.notifier.events_for(self.tertiary.id, 'offer_withdrawn')), 1)
		self.assertEqual(self.scheduler.dispatch_status(self.order.id).state, 'assigned')

	def test_secondary_accepts_after_primary_declines(self):
		self.act('decline', self.records[0].offer_id, self.primary.id, reason='Truck in repair')

		primary, secondary, tertiary = self.offers()
		self.assertEqual(primary.status, 'declined')
		self.assertEqual(primary.decline_reason, 'Truck in repair')
		self.assertTrue(secondary.is_active)
		self.assertIsNotNone(secondary.activated_at)
		self.assertEqual(len(self.notifier.events_for(self.secondary.id, 'new_offer')), 1)
		self.assertEqual(self.timers.scheduled[-1], secondary.offer_id)

		self.act('accept', secondary.offer_id, self.secondary.id)

		primary, secondary, tertiary = self.offers()
		self.assertEqual(secondary.status, 'accepted')
		self.assertEqual(tertiary.status, 'declined')
		self.assertEqual(tertiary.resolved_by, 'superseded')
		self.assertEqual(self.notifier.events_for(self.tertiary.id, 'new_offer'), [])

		self.order.refresh_from_db()
		self.assertEqual(self.order.transporter, self.secondary)
		self.assertEqual(self.orders.mark_assigned.call_count, 1)

	def test_other_transporter_forbidden(self):
		with self.assertRaises(ForbiddenError):
			self.scheduler.accept(self.records[0].offer_id, self.secondary.id)

		self.assertEqual(self.offers()[0].status, 'pending')

	def test_waiting_tier_cannot_accept(self):
		with self.assertRaises(NotActiveError):
			self.scheduler.accept(self.records[1].offer_id, self.secondary.id)

		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'awaiting_transport')

	def test_accept_twice_already_responded(self):
		self.act('accept', self.records[0].offer_id, self.primary.id)

		with self.assertRaises(AlreadyRespondedError):
			self.scheduler.accept(self.records[0].offer_id, self.primary.id)
		self.assertEqual(self.orders.mark_assigned.call_count, 1)

	def test_superseded_tier_cannot_accept(self):
		self.act('accept', self.records[0].offer_id, self.primary.id)

		with self.assertRaises(AlreadyRespondedError):
			self.scheduler.accept(self.records[1].offer_id, self.secondary.id)

	def test_accept_after_timeout_rejected(self):
		self.act('expire', self.records[0].offer_id)

		with self.assertRaises(AlreadyRespondedError):
			self.scheduler.accept(self.records[0].offer_id, self.primary.id)

	def test_unknown_offer(self):
		with self.assertRaises(OfferNotFoundError):
			self.scheduler.accept('5d9a4a86-4c55-4d3f-9f1e-1f7f0f0f0f0f', self.primary.id)
		with self.assertRaises(OfferNotFoundError):
			self.scheduler.accept('not-a-uuid', self.primary.id)

	def test_accept_losing_race_to_timeout(self):
		real_transition = self.store.transition

		def timeout_wins(offer_id, expected_status, mutation, require_active=True):
			TransportOffer.objects.filter(offer_id=offer_id).update(
				status='declined', is_active=False, resolved_by='timeout'
			)
			return real_transition(offer_id, expected_status, mutation, require_active)

		with patch.object(self.store, 'transition', side_effect=timeout_wins):
			with self.assertRaises(ConflictError):
				self.scheduler.accept(self.records[0].offer_id, self.primary.id)

		self.order.refresh_from_db()
		self.assertIsNone(self.order.transporter)
		self.orders.mark_assigned.assert_not_called()


class DeclineAndExhaustionTests(DispatchTestMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.records = self.dispatch()
		self.notifier.events.clear()

	def test_every_tier_declining_exhausts_the_order(self):
		self.act('decline', self.records[0].offer_id, self.primary.id)
		self.act('expire', self.records[1].offer_id)
		self.act('decline', self.records[2].offer_id, self.tertiary.id)

		offers = self.offers()
		self.assertTrue(all(offer.status == 'declined' for offer in offers))
		self.assertFalse(any(offer.is_active for offer in offers))
		self.assertEqual([offer.resolved_by for offer in offers], ['transporter', 'timeout', 'transporter'])

		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'unfulfilled')
		self.assertIsNone(self.order.transporter)
		self.orders.mark_unfulfilled.assert_called_once_with(self.order.id)
		self.orders.mark_assigned.assert_not_called()
		self.assertEqual(len(self.notifier.events_for(self.farmer.id, 'all_declined')), 1)

		status = self.scheduler.dispatch_status(self.order.id)
		self.assertEqual(status.state, 'exhausted')
		self.assertIsNone(status.active_tier)

	def test_tiers_activate_in_order(self):
		self.act('decline', self.records[0].offer_id, self.primary.id)
		self.assertEqual(self.scheduler.dispatch_status(self.order.id).active_tier, 'secondary')

		self.act('decline', self.records[1].offer_id, self.secondary.id)
		self.assertEqual(self.scheduler.dispatch_status(self.order.id).active_tier, 'tertiary')

		new_offer_recipients = [event[0] for event in self.notifier.events if event[1] == 'new_offer']
		self.assertEqual(new_offer_recipients, [self.secondary.id, self.tertiary.id])

	def test_exactly_one_active_record_while_dispatching(self):
		self.act('decline', self.records[0].offer_id, self.primary.id)

		self.assertEqual(TransportOffer.objects.filter(order=self.order, is_active=True).count(), 1)

	def test_decline_cancels_timer(self):
		self.act('decline', self.records[0].offer_id, self.primary.id)

		self.assertIn(self.records[0].offer_id, self.timers.cancelled)

	def test_decline_by_waiting_tier_not_active(self):
		with self.assertRaises(NotActiveError):
			self.scheduler.decline(self.records[2].offer_id, self.tertiary.id)


class ExpireTests(DispatchTestMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.records = self.dispatch()
		self.notifier.events.clear()

	def test_expire_escalates_to_next_tier(self):
		offer = self.act('expire', self.records[0].offer_id)

		self.assertEqual(offer.status, 'declined')
		self.assertEqual(offer.decline_reason, 'timeout')
		self.assertEqual(offer.resolved_by, 'timeout')
		self.assertEqual(len(self.notifier.events_for(self.primary.id, 'offer_expired')), 1)
		self.assertEqual(len(self.notifier.events_for(self.secondary.id, 'new_offer')), 1)
		self.assertTrue(self.offers()[1].is_active)

	def test_expire_is_idempotent(self):
		self.act('expire', self.records[0].offer_id)
		events_after_first = list(self.notifier.events)

		self.assertIsNone(self.act('expire', self.records[0].offer_id))
		self.assertEqual(self.notifier.events, events_after_first)
		self.assertTrue(self.offers()[1].is_active)
		self.assertIsNone(self.offers()[2].activated_at)

	def test_expire_after_accept_is_noop(self):
		self.act('accept', self.records[0].offer_id, self.primary.id)

		self.assertIsNone(self.act('expire', self.records[0].offer_id))
		self.assertEqual(self.offers()[0].status, 'accepted')

	def test_single_candidate_timeout_exhausts_order(self):
		self.order = Order.objects.create(
			farmer=self.farmer,
			listing_reference='LST-002',
			listing_name='Cassava',
			pickup_location='Techiman',
			delivery_location='Accra',
			proposed_transport_cost=Decimal('250.00')
		)
		records = self.dispatch(transporters=[self.primary])
		self.notifier.events.clear()
		scheduled_before = list(self.timers.scheduled)

		offer = self.act('expire', records[0].offer_id)

		self.assertEqual(offer.resolved_by, 'timeout')
		self.order.refresh_from_db()
		self.assertEqual(self.order.status, 'unfulfilled')
		self.orders.mark_unfulfilled.assert_called_once_with(self.order.id)
		self.assertEqual(self.timers.scheduled, scheduled_before)
		self.assertEqual(len(self.notifier.events_for(self.farmer.id, 'all_declined')), 1)
		self.assertEqual(self.scheduler.dispatch_status(self.order.id).state, 'exhausted')

		self.assertIsNone(self.act('expire', records[0].offer_id))
		self.assertEqual(self.orders.mark_unfulfilled.call_count, 1)

	def test_timer_expiry_does_not_revoke_itself(self):
		self.act('expire', self.records[0].offer_id)

		self.assertEqual(self.timers.cancelled, [])

	def test_expire_waiting_tier_is_noop(self):
		self.assertIsNone(self.act('expire', self.records[1].offer_id))
		self.assertEqual(self.offers()[1].status, 'pending')

	def test_expire_unknown_offer_is_noop(self):
		self.assertIsNone(self.scheduler.expire('5d9a4a86-4c55-4d3f-9f1e-1f7f0f0f0f0f'))

	def test_timer_losing_race_to_accept(self):
		real_transition = self.store.transition

		def accept_wins(offer_id, expected_status, mutation, require_active=True):
			TransportOffer.objects.filter(offer_id=offer_id).update(status='accepted', is_active=False)
			return real_transition(offer_id, expected_status, mutation, require_active)

		with patch.object(self.store, 'transition', side_effect=accept_wins):
			self.assertIsNone(self.act('expire', self.records[0].offer_id))

		primary, secondary, _ = self.offers()
		self.assertEqual(primary.status, 'accepted')
		self.assertFalse(secondary.is_active)
		self.assertEqual(self.notifier.events, [])

	def test_warn_expiring_only_for_active_offer(self):
		self.assertTrue(self.scheduler.warn_expiring(self.records[0].offer_id))
		self.assertEqual(len(self.notifier.events_for(self.primary.id, 'offer_expiring')), 1)

		self.assertFalse(self.scheduler.warn_expiring(self.records[1].offer_id))
		self.act('decline', self.records[0].offer_id, self.primary.id)
		self.assertFalse(self.scheduler.warn_expiring(self.records[0].offer_id))

	def test_sweep_expires_stale_offers(self):
		TransportOffer.objects.filter(offer_id=self.records[0].offer_id).update(
			activated_at=timezone.now() - timedelta(seconds=15)
		)

		with self.captureOnCommitCallbacks(execute=True):
			expired, escalated = self.scheduler.expire_stale_offers(timeout_seconds=10)

		self.assertEqual((expired, escalated), (1, 1))
		self.assertTrue(self.offers()[1].is_active)
		self.assertEqual(self.timers.cancelled, [self.records[0].offer_id])

	def test_process_offer_timeouts_command(self):
		TransportOffer.objects.filter(offer_id=self.records[0].offer_id).update(
			activated_at=timezone.now() - timedelta(seconds=15)
		)
		out = StringIO()

		with patch('services.dispatch.scheduler._dispatch_scheduler', self.scheduler):
			with self.captureOnCommitCallbacks(execute=True):
				call_command('process_offer_timeouts', timeout=10, stdout=out)

		self.assertIn('Expired 1 offer(s); escalated 1 order(s)', out.getvalue())
		primary, secondary, _ = self.offers()
		self.assertEqual(primary.resolved_by, 'timeout')
		self.assertIsNotNone(primary.responded_at)
		self.assertIsNotNone(secondary.activated_at)

	def test_sweep_leaves_fresh_offers_alone(self):
		expired, escalated = self.scheduler.expire_stale_offers(timeout_seconds=3600)

		self.assertEqual((expired, escalated), (0, 0))
		self.assertEqual(self.offers()[0].status, 'pending')


class CounterOfferTests(DispatchTestMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.records = self.dispatch()
		self.notifier.events.clear()

	def test_counter_records_fee_and_keeps_offer_open(self):
		offer = self.act('counter', self.records[0].offer_id, self.primary.id, Decimal('320.00'))

		self.assertEqual(offer.counter_fee, Decimal('320.00'))
		self.assertIsNotNone(offer.countered_at)
		self.assertEqual(offer.status, 'pending')
		self.assertTrue(offer.is_active)
		self.assertEqual(self.timers.cancelled, [])

		events = self.notifier.events_for(self.farmer.id, 'offer_countered')
		self.assertEqual(len(events), 1)
		self.assertEqual(events[0][2]['counterFee'], '320.00')

	def test_accept_after_counter_assigns_original_cost(self):
		self.act('counter', self.records[0].offer_id, self.primary.id, Decimal('320.00'))
		self.act('accept', self.records[0].offer_id, self.primary.id)

		self.order.refresh_from_db()
		self.assertEqual(self.order.transport_cost, Decimal('250.00'))

	def test_counter_on_waiting_tier_not_active(self):
		with self.assertRaises(NotActiveError):
			self.scheduler.counter(self.records[1].offer_id, self.secondary.id, Decimal('300.00'))


class NotificationFailureTests(DispatchTestMixin, TestCase):
	def test_failing_gateway_does_not_break_escalation(self):
		self.scheduler.notifier = Mock()
		self.scheduler.notifier.notify.side_effect = RuntimeError('push service down')

		records = self.dispatch()
		self.act('decline', records[0].offer_id, self.primary.id)

		self.assertTrue(self.offers()[1].is_active)
		self.assertEqual(self.scheduler.notifier.notify.call_count, 2)


class NotificationGatewayTests(SimpleTestCase):
	@patch('services.dispatch.gateways._notification_gateway', None)
	def test_test_settings_use_logging_gateway(self):
		self.assertIsInstance(get_notification_gateway(), LoggingNotificationGateway)

	@override_settings(TRANSPORT_NOTIFICATION_GATEWAY='realtime.notifications.ChannelsNotificationGateway')
	@patch('services.dispatch.gateways._notification_gateway', None)
	def test_gateway_follows_setting(self):
		from realtime.notifications import ChannelsNotificationGateway

		self.assertIsInstance(get_notification_gateway(), ChannelsNotificationGateway)

	def test_logging_gateway_logs_event(self):
		with self.assertLogs('services.dispatch.gateways', level='INFO') as logs:
			sent = LoggingNotificationGateway().notify(7, 'new_offer', {'offerId': 'abc'})

		self.assertTrue(sent)
		self.assertIn('Notify user_7: new_offer', logs.output[0])


class OfferStoreTests(DispatchTestMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.records = self.dispatch()

	def test_transition_succeeds_for_one_writer_only(self):
		offer_id = self.records[0].offer_id
		mutation = {'status': 'accepted', 'is_active': False}

		updated = self.store.transition(offer_id, 'pending', mutation)
		self.assertEqual(updated.status, 'accepted')

		with self.assertRaises(ConflictError):
			self.store.transition(offer_id, 'pending', {'status': 'declined', 'is_active': False})
		self.assertEqual(self.store.get(offer_id).status, 'accepted')

	@patch('services.dispatch.store.time.sleep')
	def test_contention_retries_are_bounded(self, mock_sleep):
		store = OfferStore(max_retries=2, retry_delay=0.01)
		operation = Mock(side_effect=OperationalError('database is locked'))

		with self.assertRaises(OperationalError):
			store._with_retries(operation)

		self.assertEqual(operation.call_count, 3)
		self.assertEqual([c.args[0] for c in mock_sleep.call_args_list], [0.01, 0.02])

	def test_transition_requires_active_record(self):
		with self.assertRaises(ConflictError):
			self.store.transition(self.records[1].offer_id, 'pending', {'status': 'accepted'})

	def test_activate_only_once(self):
		self.store.activate(self.records[1].offer_id, timezone.now())

		with self.assertRaises(ConflictError):
			self.store.activate(self.records[1].offer_id, timezone.now())

	def test_get_by_order_defaults_to_latest_cycle(self):
		offers = self.store.get_by_order(self.order.id)

		self.assertEqual([o.tier_index for o in offers], [0, 1, 2])
		self.assertEqual(self.store.next_cycle(self.order.id), 2)

	def test_get_by_transporter_filters_status(self):
		self.assertEqual(self.store.get_by_transporter(self.secondary.id).count(), 1)
		self.assertEqual(self.store.get_by_transporter(self.secondary.id, 'accepted').count(), 0)

	def test_get_unknown_offer(self):
		with self.assertRaises(OfferNotFoundError):
			self.store.get('garbage')


class OfferTimerTests(DispatchTestMixin, TestCase):
	@patch('transport.tasks.warn_expiring_transport_offer_task.apply_async')
	@patch('transport.tasks.expire_transport_offer_task.apply_async')
	def test_schedule_stores_task_id(self, mock_expire, mock_warn):
		mock_expire.return_value = Mock(id='celery-task-1')
		records = self.dispatch()

		task_id = CeleryOfferTimers(timeout_seconds=3600, warning_seconds=600).schedule(records[0])

		self.assertEqual(task_id, 'celery-task-1')
		mock_expire.assert_called_once_with((str(records[0].offer_id),), countdown=3600)
		mock_warn.assert_called_once_with((str(records[0].offer_id),), countdown=3000)
		self.assertEqual(self.store.get(records[0].offer_id).expiry_task_id, 'celery-task-1')

	@patch('services.dispatch.timers.current_app')
	def test_cancel_revokes_task(self, mock_app):
		offer = SimpleNamespace(offer_id='abc', expiry_task_id='celery-task-1')

		CeleryOfferTimers(timeout_seconds=3600, warning_seconds=0).cancel(offer)

		mock_app.control.revoke.assert_called_once_with('celery-task-1')

	@patch('services.dispatch.timers.current_app')
	def test_cancel_without_task_is_noop(self, mock_app):
		CeleryOfferTimers().cancel(SimpleNamespace(offer_id='abc', expiry_task_id=None))

		mock_app.control.revoke.assert_not_called()


class DeriveDispatchStateTests(SimpleTestCase):
	def offer(self, status='pending', is_active=False, tier='primary'):
		return SimpleNamespace(status=status, is_active=is_active, tier=tier)

	def test_states(self):
		self.assertEqual(derive_dispatch_state([]), ('idle', None))
		self.assertEqual(
			derive_dispatch_state([self.offer('declined'), self.offer(is_active=True, tier='secondary')]),
			('dispatching', 'secondary')
		)
		self.assertEqual(
			derive_dispatch_state([self.offer('declined'), self.offer('accepted')]),
			('assigned', None)
		)
		self.assertEqual(
			derive_dispatch_state([self.offer('declined'), self.offer('declined')]),
			('exhausted', None)
		)

	@override_settings(TRANSPORT_OFFER_TIERS=['gold', 'silver', 'bronze', 'standby'])
	def test_custom_tier_sequence(self):
		self.assertEqual(get_tier_sequence(), ('gold', 'silver', 'bronze', 'standby'))

	@override_settings(TRANSPORT_OFFER_TIERS=['primary', 'primary'])
	def test_duplicate_tier_names_rejected(self):
		with self.assertRaises(ImproperlyConfigured):
			get_tier_sequence()

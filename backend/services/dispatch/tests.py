import threading
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, Mock, patch

from django.db import connection
from django.test import TestCase, TransactionTestCase, override_settings
from django.conf import settings

from common.exceptions import ConflictError, NotFoundError, UpstreamDependencyError, ValidationError
from drivers import services as driver_registry
from orders import store
from orders.models import Order, OrderStatus
from realtime.notifications import RELAY_MESSAGE_TYPE, RIDE_CANCELLED, RIDE_REQUEST, RIDE_UPDATE
from realtime.sessions import DRIVER, RIDER, ConnectionSession, InMemoryConnectionRouter
from services import dispatch
from services.dispatch import coordinator
from services.dispatch.pricing import (
	PlaceholderDistanceEstimator,
	StraightLineDistanceEstimator,
	calculate_fare,
	quote_trip,
)


class RelayTestMixin:
	"""Real relay and router, channel layer replaced by a mock."""

	def setUp(self):
		super().setUp()
		self.router = InMemoryConnectionRouter()
		self.channel_layer = MagicMock()
		self.channel_layer.send = AsyncMock()
		self.profiles = Mock()
		self.profiles.rider_exists.return_value = True

		for target, value in (
			('realtime.notifications.get_connection_router', self.router),
			('realtime.notifications.get_channel_layer', self.channel_layer),
			('services.dispatch.coordinator.get_profile_directory', self.profiles),
		):
			patcher = patch(target, return_value=value)
			patcher.start()
			self.addCleanup(patcher.stop)

		# Notification jobs run inline so the test transaction sees the order
		patcher = patch('services.dispatch.coordinator.run_in_background', side_effect=lambda func, *args: func(*args))
		patcher.start()
		self.addCleanup(patcher.stop)

	def connect(self, role, participant_id):
		channel_name = f'{role.lower()}-{participant_id}'
		self.router.join(ConnectionSession(
			participant_id=str(participant_id), role=role, channel_name=channel_name,
		))
		return channel_name

	def sent_to(self, channel_name):
		"""Relay messages handed to the channel layer for one channel."""
		return [
			message for (name, message), _ in self.channel_layer.send.call_args_list
			if name == channel_name
		]


class DispatchScenarioTests(RelayTestMixin, TestCase):
	def setUp(self):
		super().setUp()
		driver_registry.set_online(101, online=True)
		driver_registry.set_online(102, online=True)
		driver_registry.set_online(103, online=False)
		self.rider_channel = self.connect(RIDER, 7)
		self.driver_channels = {
			driver_id: self.connect(DRIVER, driver_id) for driver_id in (101, 102, 103)
		}

	def test_two_drivers_one_winner(self):
		with self.captureOnCommitCallbacks(execute=True):
			order = dispatch.create_order(7, 'A', 'B')

		self.assertEqual(order.status, OrderStatus.PENDING)
		for driver_id in (101, 102):
			messages = self.sent_to(self.driver_channels[driver_id])
			self.assertEqual(len(messages), 1)
			self.assertEqual(messages[0]['type'], RELAY_MESSAGE_TYPE)
			self.assertEqual(messages[0]['event'], RIDE_REQUEST)
			self.assertEqual(messages[0]['data']['id'], order.id)
			self.assertEqual(messages[0]['data']['status'], OrderStatus.PENDING)
		self.assertEqual(self.sent_to(self.driver_channels[103]), [])

		with self.captureOnCommitCallbacks(execute=True):
			accepted = dispatch.accept_order(order.id, 101)
		self.assertEqual(accepted.status, OrderStatus.ACCEPTED)
		self.assertEqual(accepted.driver_id, 101)

		with self.captureOnCommitCallbacks(execute=True) as callbacks:
			with self.assertRaises(ConflictError):
				dispatch.accept_order(order.id, 102)
		self.assertEqual(callbacks, [])

		updates = self.sent_to(self.rider_channel)
		self.assertEqual(len(updates), 1)
		self.assertEqual(updates[0]['event'], RIDE_UPDATE)
		self.assertEqual(updates[0]['data'], {
			'status': OrderStatus.ACCEPTED,
			'orderId': order.id,
			'driverId': 101,
		})

	def test_fan_out_waits_for_commit(self):
		with self.captureOnCommitCallbacks(execute=False) as callbacks:
			dispatch.create_order(7, 'A', 'B')

		self.assertEqual(len(callbacks), 1)
		self.channel_layer.send.assert_not_called()

	def test_offline_candidate_is_skipped_silently(self):
		self.router.leave(DRIVER, 102)

		with self.captureOnCommitCallbacks(execute=True):
			order = dispatch.create_order(7, 'A', 'B')

		self.assertEqual(len(self.sent_to(self.driver_channels[101])), 1)
		self.assertEqual(self.sent_to(self.driver_channels[102]), [])
		self.assertEqual(Order.objects.get(id=order.id).status, OrderStatus.PENDING)

	def test_channel_layer_failure_does_not_fail_order(self):
		self.channel_layer.send.side_effect = RuntimeError('layer down')

		with self.captureOnCommitCallbacks(execute=True):
			order = dispatch.create_order(7, 'A', 'B')

		self.assertTrue(Order.objects.filter(id=order.id, status=OrderStatus.PENDING).exists())

	def test_broadcast_error_is_logged_not_raised(self):
		order = dispatch.create_order(7, 'A', 'B')

		with patch('drivers.services.list_online', side_effect=RuntimeError('db gone')):
			with self.assertLogs('services.dispatch.coordinator', level='ERROR'):
				self.assertEqual(coordinator.broadcast_ride_request(order.id), 0)

	def test_cancel_pending_order_notifies_online_drivers(self):
		order = dispatch.create_order(7, 'A', 'B')
		self.channel_layer.send.reset_mock()

		with self.captureOnCommitCallbacks(execute=True):
			dispatch.update_status(order.id, OrderStatus.CANCELLED)

		for driver_id in (101, 102):
			messages = self.sent_to(self.driver_channels[driver_id])
			self.assertEqual([m['event'] for m in messages], [RIDE_CANCELLED])
			self.assertEqual(messages[0]['data'], {'orderId': order.id})
		self.assertEqual(self.sent_to(self.driver_channels[103]), [])

		updates = self.sent_to(self.rider_channel)
		self.assertEqual(updates[0]['data'], {'status': OrderStatus.CANCELLED, 'orderId': order.id})

	def test_cancel_accepted_order_notifies_assigned_driver_only(self):
		order = dispatch.create_order(7, 'A', 'B')
		dispatch.accept_order(order.id, 101)
		self.channel_layer.send.reset_mock()

		with self.captureOnCommitCallbacks(execute=True):
			dispatch.update_status(order.id, OrderStatus.CANCELLED)

		self.assertEqual([m['event'] for m in self.sent_to(self.driver_channels[101])], [RIDE_CANCELLED])
		self.assertEqual(self.sent_to(self.driver_channels[102]), [])


class AcceptOrderTests(RelayTestMixin, TestCase):
	def setUp(self):
		super().setUp()
		self.order = dispatch.create_order(7, 'A', 'B')

	def test_exactly_one_of_many_drivers_wins(self):
		outcomes = []
		for driver_id in range(101, 111):
			try:
				dispatch.accept_order(self.order.id, driver_id)
				outcomes.append(driver_id)
			except ConflictError:
				outcomes.append(None)

		self.assertEqual(outcomes[0], 101)
		self.assertEqual(outcomes[1:], [None] * 9)
		self.order.refresh_from_db()
		self.assertEqual(self.order.driver_id, 101)

	def test_stale_reads_do_not_decide_the_winner(self):
		# Both drivers look at the order before either writes
		seen_by_101 = dispatch.get_order(self.order.id)
		seen_by_102 = dispatch.get_order(self.order.id)
		self.assertEqual(seen_by_101.status, OrderStatus.PENDING)
		self.assertEqual(seen_by_102.status, OrderStatus.PENDING)

		dispatch.accept_order(self.order.id, 101)
		with self.assertRaises(ConflictError) as ctx:
			dispatch.accept_order(self.order.id, 102)

		self.assertEqual(str(ctx.exception), 'order already taken or not found')
		self.order.refresh_from_db()
		self.assertEqual(self.order.driver_id, 101)

	def test_winner_accepting_again_is_conflict(self):
		dispatch.accept_order(self.order.id, 101)

		with self.assertRaises(ConflictError):
			dispatch.accept_order(self.order.id, 101)

	def test_cancelled_order_cannot_be_accepted(self):
		dispatch.update_status(self.order.id, OrderStatus.CANCELLED)

		with self.assertRaises(ConflictError):
			dispatch.accept_order(self.order.id, 101)
		self.order.refresh_from_db()
		self.assertIsNone(self.order.driver_id)

	def test_unknown_order(self):
		with self.assertRaises(NotFoundError):
			dispatch.accept_order(999, 101)

	def test_rider_offline_is_not_an_error(self):
		with self.captureOnCommitCallbacks(execute=True):
			order = dispatch.accept_order(self.order.id, 101)

		self.assertEqual(order.status, OrderStatus.ACCEPTED)
		self.channel_layer.send.assert_not_called()


class BackgroundNotificationTests(TransactionTestCase):
	"""Fan-out runs after commit on its own thread; the caller never waits on it."""

	def setUp(self):
		driver_registry.set_online(101, online=True)
		driver_registry.set_online(102, online=True)
		self.release = threading.Event()
		self.all_sent = threading.Event()
		self.sent = []

		def send_to_driver(driver_id, event, payload):
			self.release.wait(5)
			self.sent.append((driver_id, event))
			if len(self.sent) == 2:
				self.all_sent.set()
			return True

		relay = Mock()
		relay.send_to_driver.side_effect = send_to_driver
		profiles = Mock()
		profiles.rider_exists.return_value = True
		for target, value in (
			('services.dispatch.coordinator.get_notification_relay', relay),
			('services.dispatch.coordinator.get_profile_directory', profiles),
		):
			patcher = patch(target, return_value=value)
			patcher.start()
			self.addCleanup(patcher.stop)
		# Never leave a notification thread blocked after the test
		self.addCleanup(self.release.set)

	def test_create_order_returns_before_candidates_are_notified(self):
		order = dispatch.create_order(7, 'A', 'B')

		self.assertEqual(order.status, OrderStatus.PENDING)
		self.assertEqual(self.sent, [])

		self.release.set()
		self.assertTrue(self.all_sent.wait(5))
		self.assertEqual(sorted(self.sent), [(101, RIDE_REQUEST), (102, RIDE_REQUEST)])


class ConcurrentAcceptTests(TransactionTestCase):
	def setUp(self):
		for target, value in (
			('services.dispatch.coordinator.get_notification_relay', Mock()),
			('services.dispatch.coordinator.get_profile_directory', Mock()),
		):
			patcher = patch(target, return_value=value)
			patcher.start()
			self.addCleanup(patcher.stop)
		patcher = patch('services.dispatch.coordinator.run_in_background', side_effect=lambda func, *args: func(*args))
		patcher.start()
		self.addCleanup(patcher.stop)

		self.order = store.insert_order(
			rider_id=7,
			pickup_location='A',
			dropoff_location='B',
			price=Decimal('25000.00'),
			distance_km=Decimal('10.00'),
		)

	def test_one_winner_when_drivers_accept_at_once(self):
		workers = 8
		barrier = threading.Barrier(workers)
		outcomes = {}
		lock = threading.Lock()

		def attempt(driver_id):
			try:
				barrier.wait(5)
				dispatch.accept_order(self.order.id, driver_id)
				outcome = 'won'
			except ConflictError:
				outcome = 'conflict'
			except Exception as exc:
				outcome = repr(exc)
			finally:
				connection.close()
			with lock:
				outcomes[driver_id] = outcome

		threads = [threading.Thread(target=attempt, args=(101 + i,)) for i in range(workers)]
		for thread in threads:
			thread.start()
		for thread in threads:
			thread.join(10)

		self.assertEqual(len(outcomes), workers)
		winners = [driver_id for driver_id, outcome in outcomes.items() if outcome == 'won']
		self.assertEqual(len(winners), 1, outcomes)
		self.assertEqual(list(outcomes.values()).count('conflict'), workers - 1, outcomes)

		self.order.refresh_from_db()
		self.assertEqual(self.order.status, OrderStatus.ACCEPTED)
		self.assertEqual(self.order.driver_id, winners[0])


class CreateOrderTests(RelayTestMixin, TestCase):
	def test_blank_inputs_rejected_before_lookup(self):
		for args in ((7, '', 'B'), (7, 'A', '   '), (None, 'A', 'B')):
			with self.subTest(args=args):
				with self.assertRaises(ValidationError):
					dispatch.create_order(*args)
		self.profiles.rider_exists.assert_not_called()

	def test_unknown_rider(self):
		self.profiles.rider_exists.return_value = False

		with self.assertRaises(ValidationError):
			dispatch.create_order(7, 'A', 'B')
		self.assertFalse(Order.objects.exists())

	def test_profile_service_down(self):
		self.profiles.rider_exists.side_effect = UpstreamDependencyError('rider profile service unavailable')

		with self.assertRaises(UpstreamDependencyError):
			dispatch.create_order(7, 'A', 'B')
		self.assertFalse(Order.objects.exists())

	def test_price_follows_distance(self):
		order = dispatch.create_order(7, 'A', 'B')

		config = settings.DISPATCH
		self.assertEqual(order.price, config['BASE_FARE'] + config['PER_KM_RATE'] * order.distance_km)
		self.assertGreaterEqual(order.distance_km, Decimal(config['PLACEHOLDER_DISTANCE_MIN_KM']))
		self.assertLessEqual(order.distance_km, Decimal(config['PLACEHOLDER_DISTANCE_MAX_KM']))

	def test_no_online_drivers(self):
		with self.captureOnCommitCallbacks(execute=True):
			order = dispatch.create_order(7, 'A', 'B')

		self.assertEqual(order.status, OrderStatus.PENDING)
		self.channel_layer.send.assert_not_called()


class PricingTests(TestCase):
	def test_calculate_fare(self):
		self.assertEqual(calculate_fare(Decimal('10')), Decimal('25000.00'))
		self.assertEqual(calculate_fare(0), Decimal('5000.00'))
		self.assertEqual(calculate_fare(2.345), Decimal('9700.00'))

	def test_placeholder_stays_in_bounds(self):
		estimator = PlaceholderDistanceEstimator(min_km=3, max_km=4)
		for _ in range(20):
			self.assertTrue(3 <= estimator.estimate_km('A', 'B') <= 4)

	def test_straight_line_uses_coordinates(self):
		estimator = StraightLineDistanceEstimator()
		km = estimator.estimate_km('41.311081,69.240562', '41.311081,69.240562')
		self.assertEqual(km, 0)

		# Tashkent -> Samarkand is roughly 270 km as the crow flies
		km = estimator.estimate_km('41.2995,69.2401', '39.6542,66.9597')
		self.assertTrue(250 < km < 290)

	def test_straight_line_falls_back_for_addresses(self):
		estimator = StraightLineDistanceEstimator(min_km=5, max_km=5)
		self.assertEqual(estimator.estimate_km('Amir Temur Square', '41.3,69.2'), 5)

	@override_settings(DISPATCH={
		**settings.DISPATCH,
		'DISTANCE_ESTIMATOR': 'services.dispatch.pricing.PlaceholderDistanceEstimator',
		'PLACEHOLDER_DISTANCE_MIN_KM': 7,
		'PLACEHOLDER_DISTANCE_MAX_KM': 7,
		'CURRENCY': 'USD',
	})
	def test_quote_trip_uses_configured_estimator(self):
		quote = quote_trip('A', 'B')

		self.assertEqual(quote.distance_km, Decimal('7.00'))
		self.assertEqual(quote.price, Decimal('19000.00'))
		self.assertEqual(quote.currency, 'USD')

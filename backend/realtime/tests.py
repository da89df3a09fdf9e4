from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock, patch

from asgiref.sync import sync_to_async
from channels.db import database_sync_to_async
from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.test import SimpleTestCase, TestCase, TransactionTestCase
from rest_framework.test import APIClient

from drivers import services as driver_registry
from drivers.models import DriverAvailability
from .consumers import RelayConsumer
from .consumers.relay_consumer import LOCATION_UPDATE
from .notifications import RELAY_MESSAGE_TYPE, RIDE_REQUEST, RIDE_UPDATE, NotificationRelay
from .sessions import DRIVER, RIDER, ConnectionSession, InMemoryConnectionRouter, session_key


class ConnectionRouterTests(SimpleTestCase):
	def setUp(self):
		self.router = InMemoryConnectionRouter()

	def test_latest_join_wins(self):
		first = ConnectionSession(participant_id='101', role=DRIVER, channel_name='old')
		second = ConnectionSession(participant_id='101', role=DRIVER, channel_name='new')

		self.assertIsNone(self.router.join(first))
		self.assertEqual(self.router.join(second), first)
		self.assertEqual(self.router.lookup(DRIVER, 101).channel_name, 'new')
		self.assertEqual(len(self.router), 1)

	def test_roles_are_separate(self):
		self.router.join(ConnectionSession(participant_id='7', role=RIDER, channel_name='rider'))
		self.router.join(ConnectionSession(participant_id='7', role=DRIVER, channel_name='driver'))

		self.assertEqual(self.router.lookup(RIDER, 7).channel_name, 'rider')
		self.assertEqual(self.router.lookup(DRIVER, '7').channel_name, 'driver')

	def test_stale_leave_keeps_newer_session(self):
		self.router.join(ConnectionSession(participant_id='101', role=DRIVER, channel_name='old'))
		self.router.join(ConnectionSession(participant_id='101', role=DRIVER, channel_name='new'))

		self.assertFalse(self.router.leave(DRIVER, 101, channel_name='old'))
		self.assertEqual(self.router.lookup(DRIVER, 101).channel_name, 'new')

		self.assertTrue(self.router.leave(DRIVER, 101, channel_name='new'))
		self.assertIsNone(self.router.lookup(DRIVER, 101))

	def test_int_and_str_ids_resolve_to_same_session(self):
		self.router.join(ConnectionSession(participant_id='101', role=DRIVER, channel_name='driver'))

		self.assertEqual(session_key(DRIVER, 101), session_key(DRIVER, '101'))
		self.assertEqual(self.router.lookup(DRIVER, 101).channel_name, 'driver')
		self.assertEqual(self.router.lookup(DRIVER, 101), self.router.lookup(DRIVER, '101'))
		self.assertTrue(self.router.leave(DRIVER, 101))
		self.assertIsNone(self.router.lookup(DRIVER, '101'))

	def test_leave_unknown(self):
		self.assertFalse(self.router.leave(RIDER, 7))


class NotificationRelayTests(SimpleTestCase):
	def setUp(self):
		self.router = InMemoryConnectionRouter()
		self.relay = NotificationRelay(router=self.router)
		self.channel_layer = MagicMock()
		self.channel_layer.send = AsyncMock()
		patcher = patch('realtime.notifications.get_channel_layer', return_value=self.channel_layer)
		patcher.start()
		self.addCleanup(patcher.stop)

	def test_no_session_is_dropped(self):
		with self.assertLogs('realtime.notifications', level='INFO'):
			delivered = self.relay.send_to_driver(101, RIDE_REQUEST, {'id': 1})

		self.assertFalse(delivered)
		self.channel_layer.send.assert_not_called()

	def test_delivered_to_live_session(self):
		self.router.join(ConnectionSession(participant_id='7', role=RIDER, channel_name='rider-7'))

		delivered = self.relay.send_to_rider(7, RIDE_UPDATE, {'status': 'ACCEPTED', 'orderId': 1})

		self.assertTrue(delivered)
		self.channel_layer.send.assert_called_once_with('rider-7', {
			'type': RELAY_MESSAGE_TYPE,
			'event': RIDE_UPDATE,
			'data': {'status': 'ACCEPTED', 'orderId': 1},
		})

	def test_channel_layer_failure_returns_false(self):
		self.router.join(ConnectionSession(participant_id='7', role=RIDER, channel_name='rider-7'))
		self.channel_layer.send.side_effect = RuntimeError('boom')

		with self.assertLogs('realtime.notifications', level='ERROR'):
			self.assertFalse(self.relay.send_to_rider(7, RIDE_UPDATE, {}))

	def test_rider_and_driver_ids_do_not_collide(self):
		self.router.join(ConnectionSession(participant_id='7', role=RIDER, channel_name='rider-7'))

		self.assertFalse(self.relay.send_to_driver(7, RIDE_REQUEST, {}))


class RelayConsumerTests(SimpleTestCase):
	def setUp(self):
		self.router = InMemoryConnectionRouter()
		for target in (
			'realtime.consumers.relay_consumer.get_connection_router',
			'realtime.notifications.get_connection_router',
		):
			patcher = patch(target, return_value=self.router)
			patcher.start()
			self.addCleanup(patcher.stop)

	async def connect(self):
		communicator = WebsocketCommunicator(RelayConsumer.as_asgi(), '/ws/relay/')
		connected, _ = await communicator.connect()
		self.assertTrue(connected)
		greeting = await communicator.receive_json_from()
		self.assertEqual(greeting['type'], 'connection_established')
		return communicator

	async def test_driver_join_uses_driver_id(self):
		communicator = await self.connect()

		await communicator.send_json_to({
			'type': 'join', 'participantId': 'u-55', 'role': 'driver', 'driverId': 101,
		})
		response = await communicator.receive_json_from()

		self.assertEqual(response, {'type': 'joined', 'participantId': '101', 'role': DRIVER})
		self.assertIsNotNone(self.router.lookup(DRIVER, 101))
		self.assertIsNone(self.router.lookup(DRIVER, 'u-55'))
		await communicator.disconnect()

	async def test_join_rejects_unknown_role(self):
		communicator = await self.connect()

		await communicator.send_json_to({'type': 'join', 'participantId': 7, 'role': 'ADMIN'})
		response = await communicator.receive_json_from()

		self.assertEqual(response['type'], 'error')
		self.assertEqual(len(self.router), 0)
		await communicator.disconnect()

	async def test_join_requires_participant(self):
		communicator = await self.connect()

		await communicator.send_json_to({'type': 'join', 'role': 'RIDER'})
		response = await communicator.receive_json_from()

		self.assertEqual(response['type'], 'error')
		await communicator.disconnect()

	async def test_unknown_message_type(self):
		communicator = await self.connect()

		await communicator.send_json_to({'type': 'ping'})
		response = await communicator.receive_json_from()

		self.assertEqual(response['type'], 'error')
		await communicator.disconnect()

	async def test_relayed_event_reaches_client(self):
		communicator = await self.connect()
		await communicator.send_json_to({'type': 'join', 'participantId': 7, 'role': 'RIDER'})
		await communicator.receive_json_from()

		relay = NotificationRelay()
		delivered = await sync_to_async(relay.send_to_rider)(
			7, RIDE_UPDATE, {'status': 'ACCEPTED', 'orderId': 1, 'driverId': 101},
		)
		event = await communicator.receive_json_from()

		self.assertTrue(delivered)
		self.assertEqual(event, {
			'type': RIDE_UPDATE,
			'data': {'status': 'ACCEPTED', 'orderId': 1, 'driverId': 101},
		})
		await communicator.disconnect()

	async def test_disconnect_removes_session(self):
		communicator = await self.connect()
		await communicator.send_json_to({'type': 'join', 'participantId': 7, 'role': 'RIDER'})
		await communicator.receive_json_from()
		self.assertIsNotNone(self.router.lookup(RIDER, 7))

		await communicator.disconnect()

		self.assertIsNone(self.router.lookup(RIDER, 7))

	async def test_reconnect_survives_stale_disconnect(self):
		old = await self.connect()
		await old.send_json_to({'type': 'join', 'participantId': 7, 'role': 'RIDER'})
		await old.receive_json_from()

		new = await self.connect()
		await new.send_json_to({'type': 'join', 'participantId': 7, 'role': 'RIDER'})
		await new.receive_json_from()
		new_channel = self.router.lookup(RIDER, 7).channel_name

		await old.disconnect()

		self.assertEqual(self.router.lookup(RIDER, 7).channel_name, new_channel)
		await new.disconnect()

	async def test_leave_message(self):
		communicator = await self.connect()
		await communicator.send_json_to({'type': 'join', 'participantId': 7, 'role': 'RIDER'})
		await communicator.receive_json_from()

		await communicator.send_json_to({'type': 'leave'})
		response = await communicator.receive_json_from()

		self.assertEqual(response['type'], 'left')
		self.assertIsNone(self.router.lookup(RIDER, 7))
		await communicator.disconnect()

	async def test_channel_layer_message_is_forwarded(self):
		communicator = await self.connect()
		await communicator.send_json_to({'type': 'join', 'participantId': 101, 'role': 'DRIVER'})
		await communicator.receive_json_from()

		channel_name = self.router.lookup(DRIVER, 101).channel_name
		await get_channel_layer().send(channel_name, {
			'type': RELAY_MESSAGE_TYPE,
			'event': RIDE_REQUEST,
			'data': {'id': 1},
		})

		self.assertEqual(await communicator.receive_json_from(), {'type': RIDE_REQUEST, 'data': {'id': 1}})
		await communicator.disconnect()


class RelayLocationUpdateTests(TransactionTestCase):
	def setUp(self):
		self.router = InMemoryConnectionRouter()
		patcher = patch('realtime.consumers.relay_consumer.get_connection_router', return_value=self.router)
		patcher.start()
		self.addCleanup(patcher.stop)

	async def join(self, **join):
		communicator = WebsocketCommunicator(RelayConsumer.as_asgi(), '/ws/relay/')
		connected, _ = await communicator.connect()
		self.assertTrue(connected)
		await communicator.receive_json_from()
		if join:
			await communicator.send_json_to({'type': 'join', **join})
			self.assertEqual((await communicator.receive_json_from())['type'], 'joined')
		return communicator

	async def test_driver_location_marks_driver_online(self):
		await database_sync_to_async(driver_registry.set_online)(101, online=False)
		communicator = await self.join(participantId=101, role='DRIVER')

		await communicator.send_json_to({
			'type': LOCATION_UPDATE, 'driverId': 101, 'lat': 41.311081, 'lon': 69.240562,
		})
		response = await communicator.receive_json_from()

		self.assertEqual(response, {
			'type': 'location_updated', 'driverId': 101, 'lat': 41.311081, 'lon': 69.240562,
		})
		availability = await database_sync_to_async(DriverAvailability.objects.get)(driver_id=101)
		self.assertTrue(availability.is_online)
		self.assertEqual(availability.latitude, Decimal('41.311081'))
		self.assertEqual(availability.longitude, Decimal('69.240562'))
		await communicator.disconnect()

	async def test_rider_cannot_send_location(self):
		communicator = await self.join(participantId=7, role='RIDER')

		await communicator.send_json_to({'type': LOCATION_UPDATE, 'lat': 41.3, 'lon': 69.2})
		response = await communicator.receive_json_from()

		self.assertEqual(response['type'], 'error')
		exists = await database_sync_to_async(DriverAvailability.objects.exists)()
		self.assertFalse(exists)
		await communicator.disconnect()

	async def test_location_requires_join(self):
		communicator = await self.join()

		await communicator.send_json_to({'type': LOCATION_UPDATE, 'driverId': 101, 'lat': 41.3, 'lon': 69.2})
		response = await communicator.receive_json_from()

		self.assertEqual(response['type'], 'error')
		await communicator.disconnect()

	async def test_location_for_another_driver_rejected(self):
		communicator = await self.join(participantId=101, role='DRIVER')

		await communicator.send_json_to({'type': LOCATION_UPDATE, 'driverId': 102, 'lat': 41.3, 'lon': 69.2})
		response = await communicator.receive_json_from()

		self.assertEqual(response['type'], 'error')
		exists = await database_sync_to_async(DriverAvailability.objects.exists)()
		self.assertFalse(exists)
		await communicator.disconnect()

	async def test_out_of_range_location_rejected(self):
		communicator = await self.join(participantId=101, role='DRIVER')

		await communicator.send_json_to({'type': LOCATION_UPDATE, 'lat': 95, 'lon': 69.2})
		response = await communicator.receive_json_from()

		self.assertEqual(response['type'], 'error')
		await communicator.disconnect()


class NotifyEndpointTests(TestCase):
	def setUp(self):
		self.client = APIClient()
		self.router = InMemoryConnectionRouter()
		self.channel_layer = MagicMock()
		self.channel_layer.send = AsyncMock()
		for target, value in (
			('realtime.notifications.get_connection_router', self.router),
			('realtime.notifications.get_channel_layer', self.channel_layer),
		):
			patcher = patch(target, return_value=value)
			patcher.start()
			self.addCleanup(patcher.stop)

	def test_notify_offline_driver(self):
		response = self.client.post('/api/notify/driver/', {
			'driverId': 101, 'event': RIDE_REQUEST, 'data': {'id': 1},
		}, format='json')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json(), {'delivered': False})

	def test_notify_connected_rider(self):
		self.router.join(ConnectionSession(participant_id='7', role=RIDER, channel_name='rider-7'))

		response = self.client.post('/api/notify/rider/', {
			'userId': 7, 'event': RIDE_UPDATE, 'data': {'status': 'ARRIVED', 'orderId': 1},
		}, format='json')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json(), {'delivered': True})
		self.channel_layer.send.assert_called_once()

	def test_notify_requires_event(self):
		response = self.client.post('/api/notify/driver/', {'driverId': 101}, format='json')

		self.assertEqual(response.status_code, 400)
		self.assertIn('event', response.json())

from unittest.mock import AsyncMock, Mock, patch

from channels.layers import get_channel_layer
from channels.testing import WebsocketCommunicator
from django.contrib.auth.models import AnonymousUser
from django.test import SimpleTestCase

from accounts.models import User
from .consumers import FarmerConsumer, TransporterConsumer
from .notifications import ChannelsNotificationGateway


class ChannelsNotificationGatewayTests(SimpleTestCase):
	@patch('realtime.notifications.get_channel_layer')
	def test_notify_sends_to_personal_group(self, mock_get_layer):
		layer = Mock()
		layer.group_send = AsyncMock()
		mock_get_layer.return_value = layer

		sent = ChannelsNotificationGateway().notify(7, 'new_offer', {'offerId': 'abc'})

		self.assertTrue(sent)
		layer.group_send.assert_awaited_once_with('user_7', {
			'type': 'transport.event',
			'event': 'new_offer',
			'data': {'offerId': 'abc'},
		})

	@patch('realtime.notifications.get_channel_layer', return_value=None)
	def test_notify_without_channel_layer(self, mock_get_layer):
		self.assertFalse(ChannelsNotificationGateway().notify(7, 'new_offer', {}))

	def test_notify_without_recipient(self):
		self.assertFalse(ChannelsNotificationGateway().notify(None, 'new_offer', {}))


class ConsumerTests(SimpleTestCase):
	def communicator(self, consumer, path, user):
		communicator = WebsocketCommunicator(consumer.as_asgi(), path)
		communicator.scope['user'] = user
		return communicator

	async def test_transporter_receives_dispatch_events(self):
		user = User(id=41, username='transporter', role='transporter')
		communicator = self.communicator(TransporterConsumer, '/ws/transporter/', user)

		connected, _ = await communicator.connect()
		self.assertTrue(connected)
		greeting = await communicator.receive_json_from()
		self.assertEqual(greeting['type'], 'connection_established')

		await get_channel_layer().group_send('user_41', {
			'type': 'transport.event',
			'event': 'new_offer',
			'data': {'offerId': 'abc', 'tier': 'primary'},
		})
		event = await communicator.receive_json_from()
		self.assertEqual(event, {'type': 'new_offer', 'data': {'offerId': 'abc', 'tier': 'primary'}})

		await communicator.send_json_to({'type': 'ping'})
		self.assertEqual(await communicator.receive_json_from(), {'type': 'pong'})

		await communicator.disconnect()

	async def test_anonymous_connection_rejected(self):
		communicator = self.communicator(TransporterConsumer, '/ws/transporter/', AnonymousUser())

		connected, _ = await communicator.connect()

		self.assertFalse(connected)

	async def test_wrong_role_rejected(self):
		farmer = User(id=42, username='farmer', role='farmer')
		communicator = self.communicator(TransporterConsumer, '/ws/transporter/', farmer)

		connected, _ = await communicator.connect()

		self.assertFalse(connected)

	async def test_farmer_socket(self):
		farmer = User(id=43, username='farmer', role='farmer')
		communicator = self.communicator(FarmerConsumer, '/ws/farmer/', farmer)

		connected, _ = await communicator.connect()
		self.assertTrue(connected)
		await communicator.receive_json_from()

		await communicator.send_json_to({'type': 'dispatch_status'})
		error = await communicator.receive_json_from()
		self.assertEqual(error['type'], 'error')

		await communicator.disconnect()

from unittest.mock import patch

from django.test import TestCase, override_settings
from rest_framework.test import APIClient


class HealthCheckTests(TestCase):
	def setUp(self):
		self.client = APIClient()

	@override_settings(REDIS_URL=None)
	def test_healthy_without_redis(self):
		response = self.client.get('/health/')

		self.assertEqual(response.status_code, 200)
		body = response.json()
		self.assertEqual(body['status'], 'healthy')
		self.assertEqual(body['services']['database'], 'healthy')
		self.assertEqual(body['services']['channels'], 'healthy')
		self.assertNotIn('redis', body['services'])

	@override_settings(REDIS_URL='redis://localhost:6399/0')
	@patch('app_backend.views.redis.Redis.from_url')
	def test_redis_down_is_unhealthy(self, mock_from_url):
		mock_from_url.return_value.ping.side_effect = ConnectionError('refused')

		response = self.client.get('/health/')

		self.assertEqual(response.status_code, 503)
		self.assertTrue(response.json()['services']['redis'].startswith('unhealthy'))

	@patch('app_backend.views.get_channel_layer', return_value=None)
	def test_missing_channel_layer(self, mock_layer):
		response = self.client.get('/health/')

		self.assertEqual(response.status_code, 503)
		self.assertEqual(response.json()['services']['channels'], 'unhealthy: no channel layer')

from decimal import Decimal
from unittest.mock import Mock, patch

import requests
from django.test import TestCase, override_settings
from rest_framework.test import APIClient

from common.exceptions import ConflictError, NotFoundError, UpstreamDependencyError, ValidationError
from orders.models import Order, OrderStatus
from services.profiles import HttpProfileDirectory
from .models import DriverAvailability
from . import services


class SetOnlineTests(TestCase):
	def test_unknown_driver_is_created(self):
		availability = services.set_online(101, online=True)

		self.assertTrue(availability.is_online)
		self.assertIsNone(availability.latitude)
		self.assertTrue(DriverAvailability.objects.filter(driver_id=101).exists())

	def test_toggle_keeps_coordinates(self):
		services.set_online(101, online=True, lat=Decimal('41.311081'), lon=Decimal('69.240562'))
		services.set_online(101, online=False)

		availability = DriverAvailability.objects.get(driver_id=101)
		self.assertFalse(availability.is_online)
		self.assertEqual(availability.latitude, Decimal('41.311081'))
		self.assertEqual(availability.longitude, Decimal('69.240562'))

	def test_coordinates_keep_toggle(self):
		services.set_online(101, online=True)
		services.set_online(101, lat=Decimal('41.3'), lon=Decimal('69.2'))

		availability = DriverAvailability.objects.get(driver_id=101)
		self.assertTrue(availability.is_online)
		self.assertEqual(availability.latitude, Decimal('41.3'))

	def test_lat_without_lon(self):
		with self.assertRaises(ValidationError):
			services.set_online(101, lat=Decimal('41.3'))
		self.assertFalse(DriverAvailability.objects.exists())

	def test_list_online(self):
		services.set_online(102, online=True)
		services.set_online(101, online=True)
		services.set_online(103, online=False)

		self.assertEqual([d.driver_id for d in services.list_online()], [101, 102])


class RegisterDriverTests(TestCase):
	def setUp(self):
		self.profiles = Mock()
		self.profiles.driver_exists.return_value = True
		patcher = patch('drivers.services.get_profile_directory', return_value=self.profiles)
		patcher.start()
		self.addCleanup(patcher.stop)

	def test_register(self):
		availability = services.register_driver(101)

		self.assertFalse(availability.is_online)
		self.assertIsNone(availability.latitude)
		self.profiles.driver_exists.assert_called_once_with(101)

	def test_register_twice(self):
		services.register_driver(101)

		with self.assertRaises(ConflictError):
			services.register_driver(101)

	def test_register_without_profile(self):
		self.profiles.driver_exists.return_value = False

		with self.assertRaises(NotFoundError):
			services.register_driver(101)
		self.assertFalse(DriverAvailability.objects.exists())


class DriverEarningsTests(TestCase):
	def test_earnings(self):
		for price, status in (
			('10000.00', OrderStatus.COMPLETED),
			('15000.50', OrderStatus.COMPLETED),
			('99999.00', OrderStatus.IN_PROGRESS),
		):
			Order.objects.create(
				rider_id=7, driver_id=101, pickup_location='A', dropoff_location='B',
				price=Decimal(price), distance_km=Decimal('5.00'), status=status,
			)

		earnings = services.driver_earnings(101)

		self.assertEqual(earnings['driverId'], 101)
		self.assertEqual(earnings['todayEarnings'], Decimal('25000.50'))
		self.assertEqual(earnings['weekEarnings'], Decimal('25000.50'))
		self.assertEqual(earnings['totalTrips'], 2)

	def test_no_trips(self):
		earnings = services.driver_earnings(101)

		self.assertEqual(earnings['todayEarnings'], Decimal('0.00'))
		self.assertEqual(earnings['totalTrips'], 0)


@override_settings(DISPATCH={
	'RIDER_PROFILE_URL': 'http://profiles.test/riders/{rider_id}',
	'DRIVER_PROFILE_URL': 'http://profiles.test/drivers/{driver_id}',
	'PROFILE_LOOKUP_TIMEOUT': 2,
})
class HttpProfileDirectoryTests(TestCase):
	@patch('services.profiles.requests.get')
	def test_existing_profile(self, mock_get):
		mock_get.return_value = Mock(status_code=200, ok=True)

		self.assertTrue(HttpProfileDirectory().driver_exists(101))
		mock_get.assert_called_once_with('http://profiles.test/drivers/101', timeout=2)

	@patch('services.profiles.requests.get')
	def test_missing_profile(self, mock_get):
		mock_get.return_value = Mock(status_code=404, ok=False)

		self.assertFalse(HttpProfileDirectory().rider_exists(7))
		mock_get.assert_called_once_with('http://profiles.test/riders/7', timeout=2)

	@patch('services.profiles.requests.get')
	def test_server_error(self, mock_get):
		mock_get.return_value = Mock(status_code=503, ok=False)

		with self.assertRaises(UpstreamDependencyError):
			HttpProfileDirectory().rider_exists(7)

	@patch('services.profiles.requests.get', side_effect=requests.Timeout('timed out'))
	def test_timeout_is_not_retried(self, mock_get):
		with self.assertRaises(UpstreamDependencyError):
			HttpProfileDirectory().rider_exists(7)
		self.assertEqual(mock_get.call_count, 1)


class DriverApiTests(TestCase):
	def setUp(self):
		self.client = APIClient()

	def test_patch_status_creates_and_coalesces(self):
		response = self.client.patch('/api/driver/status/101/', {
			'isOnline': True, 'lat': 41.311081, 'lon': 69.240562,
		}, format='json')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json()['driverId'], 101)
		self.assertTrue(response.json()['isOnline'])

		response = self.client.patch('/api/driver/status/101/', {'isOnline': False}, format='json')
		self.assertEqual(response.status_code, 200)

		availability = DriverAvailability.objects.get(driver_id=101)
		self.assertFalse(availability.is_online)
		self.assertEqual(availability.latitude, Decimal('41.311081'))
		self.assertEqual(availability.longitude, Decimal('69.240562'))

	def test_patch_status_rejects_half_location(self):
		response = self.client.patch('/api/driver/status/101/', {'lat': 41.3}, format='json')

		self.assertEqual(response.status_code, 400)
		self.assertFalse(DriverAvailability.objects.exists())

	def test_patch_status_rejects_out_of_range(self):
		response = self.client.patch('/api/driver/status/101/', {'lat': 91, 'lon': 0}, format='json')

		self.assertEqual(response.status_code, 400)
		self.assertIn('lat', response.json())

	def test_get_status(self):
		services.set_online(101, online=True)

		response = self.client.get('/api/driver/status/101/')
		self.assertEqual(response.status_code, 200)
		self.assertTrue(response.json()['isOnline'])

		response = self.client.get('/api/driver/status/999/')
		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.json()['error'], 'not_found')

	def test_nearby_lists_online_drivers(self):
		services.set_online(101, online=True, lat=Decimal('41.3'), lon=Decimal('69.2'))
		services.set_online(102, online=False)

		response = self.client.get('/api/driver/nearby/')

		self.assertEqual(response.status_code, 200)
		body = response.json()
		self.assertEqual([d['driverId'] for d in body], [101])
		self.assertEqual(Decimal(body[0]['lat']), Decimal('41.3'))

	@patch('drivers.services.get_profile_directory')
	def test_register(self, mock_directory):
		mock_directory.return_value.driver_exists.return_value = True

		response = self.client.post('/api/driver/register/', {'driverId': 101}, format='json')
		self.assertEqual(response.status_code, 201)
		self.assertFalse(response.json()['isOnline'])

		response = self.client.post('/api/driver/register/', {'driverId': 101}, format='json')
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.json()['error'], 'conflict')

	@patch('drivers.services.get_profile_directory')
	def test_register_unknown_profile(self, mock_directory):
		mock_directory.return_value.driver_exists.return_value = False

		response = self.client.post('/api/driver/register/', {'driverId': 101}, format='json')
		self.assertEqual(response.status_code, 404)

	def test_earnings(self):
		Order.objects.create(
			rider_id=7, driver_id=101, pickup_location='A', dropoff_location='B',
			price=Decimal('12000.00'), distance_km=Decimal('3.50'), status=OrderStatus.COMPLETED,
		)

		response = self.client.get('/api/driver/101/earnings/')

		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json(), {
			'driverId': 101,
			'todayEarnings': '12000.00',
			'weekEarnings': '12000.00',
			'totalTrips': 1,
		})

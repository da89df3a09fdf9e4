from decimal import Decimal
from unittest.mock import Mock, patch

from django.contrib import admin
from django.contrib.auth.models import User
from django.db import IntegrityError, transaction
from django.test import RequestFactory, TestCase
from django.urls import reverse
from rest_framework.test import APIClient

from common.exceptions import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from services import dispatch
from . import store
from .admin import OrderAdmin
from .models import Order, OrderStatus
from .state_machine import ALLOWED_TRANSITIONS, TERMINAL_STATUSES, can_transition, validate_status_update


def make_order(status=OrderStatus.PENDING, driver_id=None, rider_id=7):
	if driver_id is None and status not in (OrderStatus.PENDING, OrderStatus.CANCELLED):
		driver_id = 101
	return Order.objects.create(
		rider_id=rider_id,
		pickup_location='A',
		dropoff_location='B',
		price=Decimal('25000.00'),
		distance_km=Decimal('10.00'),
		status=status,
		driver_id=driver_id,
	)


class StateMachineTests(TestCase):
	def test_terminal_statuses(self):
		self.assertEqual(TERMINAL_STATUSES, {OrderStatus.COMPLETED, OrderStatus.CANCELLED})

	def test_forward_edges(self):
		self.assertTrue(can_transition(OrderStatus.PENDING, OrderStatus.ACCEPTED))
		self.assertTrue(can_transition(OrderStatus.ACCEPTED, OrderStatus.ARRIVED))
		self.assertTrue(can_transition(OrderStatus.ARRIVED, OrderStatus.IN_PROGRESS))
		self.assertTrue(can_transition(OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED))

	def test_no_backward_or_skipping_moves(self):
		self.assertFalse(can_transition(OrderStatus.ACCEPTED, OrderStatus.PENDING))
		self.assertFalse(can_transition(OrderStatus.ACCEPTED, OrderStatus.IN_PROGRESS))
		self.assertFalse(can_transition(OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED))
		self.assertFalse(can_transition(OrderStatus.COMPLETED, OrderStatus.CANCELLED))

	def test_accept_is_not_a_status_update(self):
		with self.assertRaises(InvalidTransitionError):
			validate_status_update(1, OrderStatus.PENDING, OrderStatus.ACCEPTED)

	def test_every_illegal_pair_is_rejected_and_leaves_order_unchanged(self):
		for current in OrderStatus.values:
			for attempted in OrderStatus.values:
				if current == OrderStatus.PENDING and attempted == OrderStatus.ACCEPTED:
					continue
				if attempted in ALLOWED_TRANSITIONS[current]:
					continue
				with self.subTest(current=current, attempted=attempted):
					order = make_order(status=current)
					with self.assertRaises(InvalidTransitionError):
						dispatch.update_status(order.id, attempted)
					order.refresh_from_db()
					self.assertEqual(order.status, current)

	def test_status_update_cannot_accept_pending_order(self):
		order = make_order()

		with self.assertRaisesMessage(InvalidTransitionError, 'accepted by a driver'):
			dispatch.update_status(order.id, OrderStatus.ACCEPTED)

		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.PENDING)
		self.assertIsNone(order.driver_id)


class OrderStoreTests(TestCase):
	def test_accept_if_pending_only_wins_once(self):
		order = make_order()

		self.assertEqual(store.accept_if_pending(order.id, 101), 1)
		self.assertEqual(store.accept_if_pending(order.id, 102), 0)

		order.refresh_from_db()
		self.assertEqual(order.driver_id, 101)
		self.assertEqual(order.status, OrderStatus.ACCEPTED)

	def test_transition_if_status_checks_expected_status(self):
		order = make_order(status=OrderStatus.ACCEPTED)

		self.assertEqual(store.transition_if_status(order.id, OrderStatus.PENDING, OrderStatus.CANCELLED), 0)
		self.assertEqual(store.transition_if_status(order.id, OrderStatus.ACCEPTED, OrderStatus.ARRIVED), 1)

		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.ARRIVED)
		self.assertEqual(order.driver_id, 101)

	def test_accepted_order_requires_driver(self):
		with self.assertRaises(IntegrityError):
			with transaction.atomic():
				Order.objects.create(
					rider_id=7, pickup_location='A', dropoff_location='B',
					price=Decimal('1'), distance_km=Decimal('1'),
					status=OrderStatus.ACCEPTED, driver_id=None,
				)

	def test_pending_order_cannot_have_driver(self):
		with self.assertRaises(IntegrityError):
			with transaction.atomic():
				make_order(status=OrderStatus.PENDING, driver_id=101)

	def test_rider_orders_newest_first(self):
		first = make_order()
		second = make_order()
		make_order(rider_id=8)

		self.assertEqual(list(store.rider_orders(7)), [second, first])


class UpdateStatusTests(TestCase):
	def test_full_trip_lifecycle(self):
		order = make_order(status=OrderStatus.ACCEPTED)

		for status in (OrderStatus.ARRIVED, OrderStatus.IN_PROGRESS, OrderStatus.COMPLETED):
			order = dispatch.update_status(order.id, status)
			self.assertEqual(order.status, status)

		self.assertTrue(order.is_terminal)
		self.assertEqual(order.driver_id, 101)
		self.assertEqual(order.price, Decimal('25000.00'))

	def test_unknown_status_is_validation_error(self):
		order = make_order()
		with self.assertRaises(ValidationError):
			dispatch.update_status(order.id, 'TELEPORTED')

	def test_unknown_order_is_not_found(self):
		with self.assertRaises(NotFoundError):
			dispatch.update_status(999, OrderStatus.CANCELLED)

	@patch('orders.store.transition_if_status', return_value=0)
	def test_concurrent_change_is_conflict(self, mock_transition):
		order = make_order(status=OrderStatus.ACCEPTED)

		with self.assertRaises(ConflictError) as ctx:
			dispatch.update_status(order.id, OrderStatus.ARRIVED)

		self.assertNotIsInstance(ctx.exception, InvalidTransitionError)
		mock_transition.assert_called_once_with(order.id, OrderStatus.ACCEPTED, OrderStatus.ARRIVED)


class OrderApiTests(TestCase):
	def setUp(self):
		self.client = APIClient()
		self.profiles = Mock()
		self.profiles.rider_exists.return_value = True
		patcher = patch('services.dispatch.coordinator.get_profile_directory', return_value=self.profiles)
		patcher.start()
		self.addCleanup(patcher.stop)

	def test_create_order(self):
		response = self.client.post('/api/order/', {
			'riderId': 7,
			'pickupLocation': 'A',
			'dropoffLocation': 'B',
		}, format='json')

		self.assertEqual(response.status_code, 201)
		body = response.json()
		self.assertEqual(body['riderId'], 7)
		self.assertEqual(body['status'], OrderStatus.PENDING)
		self.assertIsNone(body['driverId'])

		order = Order.objects.get(id=body['id'])
		self.assertEqual(Decimal(body['price']), order.price)
		self.assertEqual(Decimal(body['distanceKm']), order.distance_km)

	def test_create_order_missing_fields(self):
		response = self.client.post('/api/order/', {'riderId': 7}, format='json')

		self.assertEqual(response.status_code, 400)
		self.assertIn('pickupLocation', response.json())
		self.profiles.rider_exists.assert_not_called()
		self.assertFalse(Order.objects.exists())

	def test_create_order_unknown_rider(self):
		self.profiles.rider_exists.return_value = False

		response = self.client.post('/api/order/', {
			'riderId': 7,
			'pickupLocation': 'A',
			'dropoffLocation': 'B',
		}, format='json')

		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.json()['error'], 'validation_error')
		self.assertFalse(Order.objects.exists())

	def test_get_order(self):
		order = make_order()

		response = self.client.get(f'/api/order/{order.id}/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json()['id'], order.id)

		response = self.client.get('/api/order/999/')
		self.assertEqual(response.status_code, 404)
		self.assertEqual(response.json()['error'], 'not_found')

	def test_accept_order(self):
		order = make_order()

		response = self.client.post(f'/api/order/{order.id}/accept/', {'driverId': 101}, format='json')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json()['status'], OrderStatus.ACCEPTED)
		self.assertEqual(response.json()['driverId'], 101)

		response = self.client.post(f'/api/order/{order.id}/accept/', {'driverId': 102}, format='json')
		self.assertEqual(response.status_code, 409)
		self.assertEqual(response.json()['message'], 'order already taken or not found')

	def test_accept_unknown_order(self):
		response = self.client.post('/api/order/999/accept/', {'driverId': 101}, format='json')
		self.assertEqual(response.status_code, 404)

	def test_update_status(self):
		order = make_order(status=OrderStatus.ACCEPTED)

		response = self.client.patch(f'/api/order/{order.id}/status/', {'status': 'ARRIVED'}, format='json')
		self.assertEqual(response.status_code, 200)
		self.assertEqual(response.json()['status'], OrderStatus.ARRIVED)

	def test_update_status_invalid_transition(self):
		order = make_order(status=OrderStatus.ACCEPTED)

		response = self.client.patch(f'/api/order/{order.id}/status/', {'status': 'COMPLETED'}, format='json')
		self.assertEqual(response.status_code, 400)
		self.assertEqual(response.json()['error'], 'invalid_transition')

		order.refresh_from_db()
		self.assertEqual(order.status, OrderStatus.ACCEPTED)

	def test_update_status_unknown_value(self):
		order = make_order()

		response = self.client.patch(f'/api/order/{order.id}/status/', {'status': 'FLYING'}, format='json')
		self.assertEqual(response.status_code, 400)
		self.assertIn('status', response.json())

	def test_rider_orders(self):
		first = make_order()
		second = make_order()
		make_order(rider_id=8)

		response = self.client.get('/api/order/rider/7/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual([o['id'] for o in response.json()], [second.id, first.id])

	def test_pending_orders(self):
		pending = make_order()
		make_order(status=OrderStatus.ACCEPTED)

		response = self.client.get('/api/order/pending/')
		self.assertEqual(response.status_code, 200)
		self.assertEqual([o['id'] for o in response.json()], [pending.id])


class OrderAdminTests(TestCase):
	def setUp(self):
		self.user = User.objects.create_superuser('ops', 'ops@example.com', 'secret')
		self.client.force_login(self.user)
		self.order = make_order(status=OrderStatus.ACCEPTED, driver_id=101)

	def test_admin_is_view_only(self):
		request = RequestFactory().get('/admin/orders/order/')
		request.user = self.user
		order_admin = OrderAdmin(Order, admin.site)

		self.assertTrue(order_admin.has_view_permission(request, self.order))
		self.assertFalse(order_admin.has_add_permission(request))
		self.assertFalse(order_admin.has_change_permission(request, self.order))
		self.assertFalse(order_admin.has_delete_permission(request, self.order))

	def test_change_form_post_is_refused(self):
		response = self.client.post(
			reverse('admin:orders_order_change', args=[self.order.id]),
			{'status': OrderStatus.PENDING, 'driver_id': '', 'rider_id': 8},
		)

		self.assertEqual(response.status_code, 403)
		self.order.refresh_from_db()
		self.assertEqual(self.order.status, OrderStatus.ACCEPTED)
		self.assertEqual(self.order.driver_id, 101)
		self.assertEqual(self.order.rider_id, 7)

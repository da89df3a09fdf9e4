"""
Dispatch coordinator - order creation, candidate fan-out, acceptance and status changes.

Every mutating operation follows persist-then-notify: the database write
decides the outcome, and notifications are scheduled with
``transaction.on_commit`` so no participant hears about uncommitted state.
Notification outcomes never affect the caller.
"""

import logging
import threading
from typing import List

from django.db import connection, transaction

from common.exceptions import ConflictError, NotFoundError, ValidationError
from drivers import services as driver_registry
from orders import store
from orders.models import Order, OrderStatus
from orders.serializers import order_payload
from orders.state_machine import validate_status_update
from realtime.notifications import (
    RIDE_CANCELLED,
    RIDE_REQUEST,
    RIDE_UPDATE,
    get_notification_relay,
)
from services.profiles import get_profile_directory
from .pricing import quote_trip

logger = logging.getLogger(__name__)


# ===================== Rider Operations =====================

def create_order(rider_id: int, pickup_location: str, dropoff_location: str) -> Order:
    """
    Create a PENDING order and offer it to every online driver.

    Args:
        rider_id: Identity of the requesting rider (must have a profile)
        pickup_location: Pickup address or "lat,lon"
        dropoff_location: Dropoff address or "lat,lon"

    Returns:
        The created order. Candidate drivers are notified after commit and
        may not have seen it yet.

    Raises:
        ValidationError: Missing input or unknown rider
        UpstreamDependencyError: The rider profile lookup failed
    """
    pickup_location = (pickup_location or "").strip()
    dropoff_location = (dropoff_location or "").strip()
    if not rider_id or not pickup_location or not dropoff_location:
        raise ValidationError("riderId, pickupLocation and dropoffLocation are required")

    if not get_profile_directory().rider_exists(rider_id):
        raise ValidationError(f"Rider profile {rider_id} not found")

    quote = quote_trip(pickup_location, dropoff_location)

    with transaction.atomic():
        order = store.insert_order(
            rider_id=rider_id,
            pickup_location=pickup_location,
            dropoff_location=dropoff_location,
            price=quote.price,
            distance_km=quote.distance_km,
        )
        order_id = order.id
        transaction.on_commit(lambda: run_in_background(broadcast_ride_request, order_id))

    return order


def get_order(order_id: int) -> Order:
    order = store.find_order(order_id)
    if order is None:
        raise NotFoundError(f"Order {order_id} not found")
    return order


def list_rider_orders(rider_id: int) -> List[Order]:
    """A rider's orders, newest first."""
    return list(store.rider_orders(rider_id))


def list_pending_orders() -> List[Order]:
    """Open orders, for drivers that missed a ride:request push."""
    return list(store.pending_orders())


# ===================== Driver Operations =====================

def accept_order(order_id: int, driver_id: int) -> Order:
    """
    Assign an order to the first driver whose conditional write lands.

    The row count of the single UPDATE ... WHERE status=PENDING decides the
    winner. Nothing read before that write is trusted.

    Raises:
        NotFoundError: The order does not exist
        ConflictError: Another driver won, or the order is no longer PENDING
    """
    if not driver_id:
        raise ValidationError("driverId is required")

    if store.accept_if_pending(order_id, driver_id) == 0:
        # Only classifies the failure; the write already decided the outcome
        if not store.order_exists(order_id):
            raise NotFoundError(f"Order {order_id} not found")
        logger.info("Driver %s lost the race for order %s", driver_id, order_id)
        raise ConflictError("order already taken or not found")

    order = get_order(order_id)
    logger.info("Order %s accepted by driver %s", order_id, driver_id)

    transaction.on_commit(lambda: run_in_background(notify_rider_of_status, order))
    return order


def update_status(order_id: int, new_status: str) -> Order:
    """
    Move an order forward along the state machine.

    Raises:
        ValidationError: Unknown status value
        NotFoundError: The order does not exist
        InvalidTransitionError: The move is not allowed from the current status
        ConflictError: The status changed concurrently; nothing was written
    """
    if new_status not in OrderStatus.values:
        raise ValidationError(f"Unknown status {new_status!r}")

    order = get_order(order_id)
    current_status = order.status
    validate_status_update(order_id, current_status, new_status)

    if store.transition_if_status(order_id, current_status, new_status) == 0:
        raise ConflictError(
            f"Order {order_id} changed while moving from {current_status} to {new_status}"
        )

    order.refresh_from_db()
    logger.info("Order %s moved %s -> %s", order_id, current_status, new_status)

    transaction.on_commit(lambda: run_in_background(notify_rider_of_status, order))
    if new_status == OrderStatus.CANCELLED:
        transaction.on_commit(lambda: run_in_background(notify_drivers_of_cancellation, order))
    return order


# ===================== Notifications =====================
# Best-effort: failures are logged and never reach the caller.

def run_in_background(func, *args) -> threading.Thread:
    """
    Run a notification job on a daemon thread.

    Called from on_commit hooks so the request returns without waiting on
    candidate queries or channel layer round trips.
    """
    def job():
        try:
            func(*args)
        finally:
            connection.close()

    thread = threading.Thread(target=job, name=f"dispatch-{func.__name__}", daemon=True)
    thread.start()
    return thread


def broadcast_ride_request(order_id: int) -> int:
    """
    Offer a new order to every online driver.

    Returns:
        Number of drivers the event was handed to
    """
    delivered = 0
    try:
        order = store.find_order(order_id)
        if order is None or order.status != OrderStatus.PENDING:
            return 0

        relay = get_notification_relay()
        payload = order_payload(order)
        candidates = driver_registry.list_online()

        for candidate in candidates:
            if relay.send_to_driver(candidate.driver_id, RIDE_REQUEST, payload):
                delivered += 1

        logger.info("Order %s offered to %d/%d online driver(s)",
                    order_id, delivered, len(candidates))
    except Exception:
        logger.exception("Failed to broadcast ride request for order %s", order_id)
    return delivered


def notify_rider_of_status(order: Order) -> bool:
    payload = {"status": order.status, "orderId": order.id}
    if order.driver_id is not None:
        payload["driverId"] = order.driver_id

    try:
        return get_notification_relay().send_to_rider(order.rider_id, RIDE_UPDATE, payload)
    except Exception:
        logger.exception("Failed to notify rider %s about order %s", order.rider_id, order.id)
        return False


def notify_drivers_of_cancellation(order: Order) -> int:
    """Tell the assigned driver, or every online candidate if none was assigned."""
    delivered = 0
    try:
        relay = get_notification_relay()
        if order.driver_id is not None:
            driver_ids = [order.driver_id]
        else:
            driver_ids = [candidate.driver_id for candidate in driver_registry.list_online()]

        for driver_id in driver_ids:
            if relay.send_to_driver(driver_id, RIDE_CANCELLED, {"orderId": order.id}):
                delivered += 1
    except Exception:
        logger.exception("Failed to notify drivers about cancelled order %s", order.id)
    return delivered

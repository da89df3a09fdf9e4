"""
Order persistence.

Every mutation of an existing order is a single conditional UPDATE whose
affected-row count tells the caller whether it won. Reads taken before a write
are never used to decide the outcome.
"""

import logging
from decimal import Decimal
from typing import Optional

from django.db.models import QuerySet
from django.utils import timezone

from .models import Order, OrderStatus

logger = logging.getLogger(__name__)


def insert_order(
    rider_id: int,
    pickup_location: str,
    dropoff_location: str,
    price: Decimal,
    distance_km: Decimal,
) -> Order:
    """Persist a new PENDING order."""
    order = Order.objects.create(
        rider_id=rider_id,
        pickup_location=pickup_location,
        dropoff_location=dropoff_location,
        price=price,
        distance_km=distance_km,
        status=OrderStatus.PENDING,
    )
    logger.info("Created order %s for rider %s (price=%s, distance_km=%s)",
                order.id, rider_id, price, distance_km)
    return order


def find_order(order_id: int) -> Optional[Order]:
    return Order.objects.filter(id=order_id).first()


def order_exists(order_id: int) -> bool:
    return Order.objects.filter(id=order_id).exists()


def accept_if_pending(order_id: int, driver_id: int) -> int:
    """
    SET status=ACCEPTED, driver_id=<driver> WHERE id=<order> AND status=PENDING.

    Returns the number of rows updated (1 = this driver won, 0 = lost or missing).
    """
    updated = Order.objects.filter(
        id=order_id,
        status=OrderStatus.PENDING,
        driver_id__isnull=True,
    ).update(
        status=OrderStatus.ACCEPTED,
        driver_id=driver_id,
        updated_at=timezone.now(),
    )
    logger.debug("accept_if_pending(order=%s, driver=%s) -> %d row(s)",
                 order_id, driver_id, updated)
    return updated


def transition_if_status(order_id: int, expected_status: str, new_status: str) -> int:
    """
    SET status=<new> WHERE id=<order> AND status=<expected>.

    Returns the number of rows updated. driver_id, price and distance are never touched.
    """
    updated = Order.objects.filter(
        id=order_id,
        status=expected_status,
    ).update(
        status=new_status,
        updated_at=timezone.now(),
    )
    logger.debug("transition_if_status(order=%s, %s -> %s) -> %d row(s)",
                 order_id, expected_status, new_status, updated)
    return updated


def rider_orders(rider_id: int) -> QuerySet:
    """All orders of one rider, newest first."""
    return Order.objects.filter(rider_id=rider_id).order_by('-created_at', '-id')


def pending_orders() -> QuerySet:
    return Order.objects.filter(status=OrderStatus.PENDING).order_by('-created_at', '-id')


def completed_driver_orders(driver_id: int, since=None) -> QuerySet:
    qs = Order.objects.filter(driver_id=driver_id, status=OrderStatus.COMPLETED)
    if since is not None:
        qs = qs.filter(updated_at__gte=since)
    return qs

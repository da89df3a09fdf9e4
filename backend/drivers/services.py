"""
Driver availability registry.

Tracks which drivers are online and where they were last seen. Updates
coalesce: only the fields a caller supplies are written.
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Dict, Any, List, Optional

from django.db import IntegrityError, transaction
from django.db.models import Sum
from django.utils import timezone

from common.exceptions import ConflictError, NotFoundError, ValidationError
from drivers.models import DriverAvailability
from orders import store
from services.profiles import get_profile_directory

logger = logging.getLogger(__name__)


def register_driver(driver_id: int) -> DriverAvailability:
    """
    Provision the availability record for a newly created driver profile.

    The record starts offline with no location.
    """
    if not get_profile_directory().driver_exists(driver_id):
        raise NotFoundError(f"Driver profile {driver_id} not found")

    try:
        with transaction.atomic():
            availability = DriverAvailability.objects.create(driver_id=driver_id)
    except IntegrityError:
        raise ConflictError(f"Driver {driver_id} is already registered")

    logger.info("Registered driver %s", driver_id)
    return availability


# DRIVER STATUS UPDATE
@transaction.atomic
def set_online(
    driver_id: int,
    online: Optional[bool] = None,
    lat: Optional[Decimal] = None,
    lon: Optional[Decimal] = None,
) -> DriverAvailability:
    """
    Upsert a driver's availability.

    Fields left as None keep their stored value. Unknown drivers get a record.
    """
    if (lat is None) != (lon is None):
        raise ValidationError("lat and lon must be supplied together")

    availability, created = (
        DriverAvailability.objects.select_for_update()
        .get_or_create(driver_id=driver_id)
    )

    update_fields = ["last_updated"]
    if online is not None:
        availability.is_online = online
        update_fields.append("is_online")
    if lat is not None:
        availability.latitude = lat
        availability.longitude = lon
        update_fields.extend(["latitude", "longitude"])

    availability.last_updated = timezone.now()
    availability.save(update_fields=update_fields)

    logger.debug(
        "Driver %s availability %s: online=%s lat=%s lon=%s",
        driver_id, "created" if created else "updated",
        availability.is_online, availability.latitude, availability.longitude,
    )
    return availability


def get_availability(driver_id: int) -> DriverAvailability:
    try:
        return DriverAvailability.objects.get(driver_id=driver_id)
    except DriverAvailability.DoesNotExist:
        raise NotFoundError(f"Driver {driver_id} not found")


def list_online() -> List[DriverAvailability]:
    """
    Every driver currently marked online.

    No radius, ETA or ranking filter is applied. Proximity ranking would
    belong here.
    """
    return list(DriverAvailability.objects.filter(is_online=True).order_by("driver_id"))


def driver_earnings(driver_id: int) -> Dict[str, Any]:
    """Revenue of completed orders for today, the last 7 days, and total trips."""
    now = timezone.now()
    start_of_today = now.replace(hour=0, minute=0, second=0, microsecond=0)
    week_ago = now - timedelta(days=7)

    def _total(since=None) -> Decimal:
        result = store.completed_driver_orders(driver_id, since=since).aggregate(total=Sum("price"))
        return result["total"] or Decimal("0.00")

    return {
        "driverId": driver_id,
        "todayEarnings": _total(start_of_today),
        "weekEarnings": _total(week_ago),
        "totalTrips": store.completed_driver_orders(driver_id).count(),
    }

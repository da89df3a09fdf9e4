"""
Trip distance and fare calculation.

price = BASE_FARE + PER_KM_RATE * distance_km

Distance is not a routing result. ``PlaceholderDistanceEstimator`` draws a
value within configured bounds; ``StraightLineDistanceEstimator`` uses the
great-circle distance when both locations are ``"lat,lon"`` strings and falls
back to the placeholder for free-text addresses.
"""

import logging
import random
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP

from django.conf import settings
from django.utils.module_loading import import_string

from common.utils import calculate_distance, parse_coordinates

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")


@dataclass(frozen=True)
class FareQuote:
    distance_km: Decimal
    price: Decimal
    currency: str


class PlaceholderDistanceEstimator:
    def __init__(self, min_km=None, max_km=None):
        config = settings.DISPATCH
        self.min_km = config["PLACEHOLDER_DISTANCE_MIN_KM"] if min_km is None else min_km
        self.max_km = config["PLACEHOLDER_DISTANCE_MAX_KM"] if max_km is None else max_km

    def estimate_km(self, pickup: str, dropoff: str) -> float:
        return random.uniform(self.min_km, self.max_km)


class StraightLineDistanceEstimator(PlaceholderDistanceEstimator):
    def estimate_km(self, pickup: str, dropoff: str) -> float:
        start = parse_coordinates(pickup)
        end = parse_coordinates(dropoff)
        if start is None or end is None:
            return super().estimate_km(pickup, dropoff)
        return calculate_distance(start[0], start[1], end[0], end[1]) / 1000.0


def get_distance_estimator():
    return import_string(settings.DISPATCH["DISTANCE_ESTIMATOR"])()


def calculate_fare(distance_km) -> Decimal:
    config = settings.DISPATCH
    distance = Decimal(str(distance_km)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    price = config["BASE_FARE"] + config["PER_KM_RATE"] * distance
    return price.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def quote_trip(pickup: str, dropoff: str) -> FareQuote:
    """Compute distance and price for a new order. Called once per order."""
    raw_km = get_distance_estimator().estimate_km(pickup, dropoff)
    distance_km = Decimal(str(raw_km)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)
    quote = FareQuote(
        distance_km=distance_km,
        price=calculate_fare(distance_km),
        currency=settings.DISPATCH["CURRENCY"],
    )
    logger.debug("Quoted %s -> %s: %s km, %s %s",
                 pickup, dropoff, quote.distance_km, quote.price, quote.currency)
    return quote

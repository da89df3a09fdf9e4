"""Common utility functions."""

from .geo import calculate_distance, parse_coordinates

__all__ = [
    "calculate_distance",
    "parse_coordinates",
]

"""Utility functions for the conquest engine."""

from conquest.utils.cache import TTLCache
from conquest.utils.geodesy import (
    EARTH_RADIUS_M,
    LocalProjection,
    haversine_distance,
    is_valid_coordinate,
    ring_length,
    shoelace_signed_area,
)

__all__ = [
    "EARTH_RADIUS_M",
    "LocalProjection",
    "TTLCache",
    "haversine_distance",
    "is_valid_coordinate",
    "ring_length",
    "shoelace_signed_area",
]

"""
Geodesy helpers for territory geometry.

Territories are small relative to the curvature of the Earth, so all exact
polygon work happens in a local tangent plane measured in metres. This module
provides the bridge between geodetic (lat/lng) coordinates and that plane.

Coordinate Systems:
-------------------
1. Geodetic coordinates (lng, lat) in degrees
   - Stored in rings as ``(lng, lat)`` pairs (GeoJSON order)
   - Not equal-area, so the shoelace formula cannot be applied directly

2. Local planar coordinates (x, y) in metres
   - Equirectangular projection around an origin (lat0, lng0)
   - x = R * dlng * cos(lat0), y = R * dlat (radians)
   - Accurate to well under a percent for shapes a few kilometres across

Distances along a path use the haversine great-circle formula on a sphere of
mean Earth radius.
"""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

EARTH_RADIUS_M = 6_371_008.8

Coordinate = tuple[float, float]


def haversine_distance(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    """
    Great-circle distance in metres between two geodetic points.

    Args:
        lat1: Latitude of the first point in degrees
        lng1: Longitude of the first point in degrees
        lat2: Latitude of the second point in degrees
        lng2: Longitude of the second point in degrees

    Returns:
        Distance in metres (non-negative)

    Example:
        >>> round(haversine_distance(0.0, 0.0, 0.0, 1.0))
        111195
    """
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlmb = math.radians(lng2 - lng1)

    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def ring_length(ring: Sequence[Coordinate]) -> float:
    """Sum of great-circle distances between consecutive ``(lng, lat)`` vertices."""

    total = 0.0
    for (lng1, lat1), (lng2, lat2) in zip(ring, ring[1:], strict=False):
        total += haversine_distance(lat1, lng1, lat2, lng2)
    return total


def _wrap_degrees(delta: float) -> float:
    # Keep longitude differences in [-180, 180) so loops near the antimeridian project sanely
    return (delta + 180.0) % 360.0 - 180.0


@dataclass(frozen=True, slots=True)
class LocalProjection:
    """
    Equirectangular tangent-plane projection centred on a geodetic origin.

    Attributes:
        origin_lat: Latitude of the projection origin in degrees
        origin_lng: Longitude of the projection origin in degrees

    Example:
        >>> proj = LocalProjection(origin_lat=0.0, origin_lng=0.0)
        >>> x, y = proj.forward(0.001, 0.0)
        >>> round(x, 1), round(y, 1)
        (111.2, 0.0)
    """

    origin_lat: float
    origin_lng: float

    @property
    def _x_scale(self) -> float:
        return EARTH_RADIUS_M * math.cos(math.radians(self.origin_lat))

    def forward(self, lng: float, lat: float) -> Coordinate:
        """Project ``(lng, lat)`` degrees to planar ``(x, y)`` metres."""

        dlng = math.radians(_wrap_degrees(lng - self.origin_lng))
        dlat = math.radians(lat - self.origin_lat)
        return dlng * self._x_scale, dlat * EARTH_RADIUS_M

    def inverse(self, x: float, y: float) -> Coordinate:
        """Reproject planar ``(x, y)`` metres back to ``(lng, lat)`` degrees."""

        lng = self.origin_lng + math.degrees(x / self._x_scale)
        lat = self.origin_lat + math.degrees(y / EARTH_RADIUS_M)
        return _wrap_degrees(lng), lat

    def forward_ring(self, ring: Iterable[Coordinate]) -> list[Coordinate]:
        return [self.forward(lng, lat) for lng, lat in ring]

    def inverse_ring(self, ring: Iterable[Coordinate]) -> list[Coordinate]:
        return [self.inverse(x, y) for x, y in ring]

    @classmethod
    def centered_on(cls, coords: Sequence[Coordinate]) -> "LocalProjection":
        """
        Build a projection centred on the mean of ``(lng, lat)`` coordinates.

        The arithmetic mean is only an approximate centroid, which is all the
        projection needs: its error stays negligible for territory-sized shapes.

        Raises:
            ValueError: If ``coords`` is empty
        """
        if not coords:
            raise ValueError("cannot centre a projection on zero coordinates")
        origin_lng = coords[0][0]
        # Average longitude offsets relative to the first point to survive the antimeridian
        mean_offset = sum(_wrap_degrees(lng - origin_lng) for lng, _ in coords) / len(coords)
        mean_lat = sum(lat for _, lat in coords) / len(coords)
        return cls(origin_lat=mean_lat, origin_lng=_wrap_degrees(origin_lng + mean_offset))


def shoelace_signed_area(ring: Sequence[Coordinate]) -> float:
    """
    Signed planar area of a ring using the shoelace formula.

    Positive for counter-clockwise rings, negative for clockwise ones. The ring
    may be open or closed; a repeated closing vertex contributes nothing.

    Example:
        >>> shoelace_signed_area([(0, 0), (1, 0), (1, 1), (0, 1)])
        1.0
        >>> shoelace_signed_area([(0, 0), (0, 1), (1, 1), (1, 0)])
        -1.0
    """
    n = len(ring)
    if n < 3:
        return 0.0
    twice_area = 0.0
    for i in range(n):
        x1, y1 = ring[i]
        x2, y2 = ring[(i + 1) % n]
        twice_area += x1 * y2 - x2 * y1
    return twice_area / 2.0


def is_valid_coordinate(lat: float, lng: float) -> bool:
    """True if both values are finite and inside the geodetic ranges."""

    return (
        math.isfinite(lat)
        and math.isfinite(lng)
        and -90.0 <= lat <= 90.0
        and -180.0 <= lng <= 180.0
    )

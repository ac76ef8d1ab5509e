"""Planar polygon clipping backed by shapely/GEOS.

Every exact geometric operation the engine needs goes through this module so
the clipping library stays behind one boundary. GEOS overlay handles simple,
non-convex and locally concave shapes, which GPS traces routinely are.

All functions here work in local planar metres; conversion to and from
geodetic rings uses a :class:`~conquest.utils.geodesy.LocalProjection`.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence

import shapely
from shapely.geometry import MultiPolygon, Polygon
from shapely.geometry.base import BaseGeometry
from shapely.geometry.polygon import orient

from conquest.domain.errors import GeometryError
from conquest.domain.models import Ring
from conquest.utils.geodesy import LocalProjection


def polygonal_parts(geometry: BaseGeometry) -> list[Polygon]:
    """Flatten any overlay result into its non-empty polygons.

    Overlays can return points or lines where shapes merely touch; those
    carry no area and are dropped.
    """
    if geometry.is_empty:
        return []
    if isinstance(geometry, Polygon):
        return [geometry]
    if isinstance(geometry, MultiPolygon):
        return [p for p in geometry.geoms if not p.is_empty]
    parts: list[Polygon] = []
    for sub in getattr(geometry, "geoms", ()):
        parts.extend(polygonal_parts(sub))
    return parts


def largest_polygon(parts: Iterable[Polygon]) -> Polygon | None:
    """The part with the greatest area; ties keep the first one."""

    best: Polygon | None = None
    for part in parts:
        if best is None or part.area > best.area:
            best = part
    return best


def normalize_winding(polygon: Polygon) -> Polygon:
    """Exterior counter-clockwise, holes clockwise."""

    return orient(polygon, sign=1.0)


def compute_intersection(a: Polygon, b: Polygon) -> list[Polygon]:
    """Polygonal region shared by ``a`` and ``b``."""

    return [normalize_winding(p) for p in polygonal_parts(shapely.intersection(a, b))]


def compute_difference(a: Polygon, b: Polygon) -> list[Polygon]:
    """Polygonal pieces of ``a`` left after removing ``b``.

    The result may hold several disjoint pieces when ``b`` cuts ``a`` apart.
    """
    return [normalize_winding(p) for p in polygonal_parts(shapely.difference(a, b))]


def compute_union(polygons: Sequence[Polygon]) -> list[Polygon]:
    return [normalize_winding(p) for p in polygonal_parts(shapely.union_all(polygons))]


def area_of(parts: Iterable[Polygon]) -> float:
    return float(sum(p.area for p in parts))


def repair(polygon: Polygon) -> Polygon | None:
    """Turn a self-intersecting trace into its largest valid piece."""

    if polygon.is_valid:
        return polygon
    return largest_polygon(polygonal_parts(shapely.make_valid(polygon)))


def _check_ring(ring: Sequence[tuple[float, float]], label: str) -> None:
    for vertex in ring:
        if len(vertex) != 2 or not all(math.isfinite(c) for c in vertex):
            raise GeometryError(f"{label} contains a non-finite vertex {vertex!r}")
    distinct = {tuple(v) for v in ring}
    if len(distinct) < 3:
        raise GeometryError(f"{label} has {len(distinct)} distinct vertices, need at least 3")


def to_planar_polygon(
    ring: Sequence[tuple[float, float]],
    holes: Sequence[Sequence[tuple[float, float]]],
    projection: LocalProjection,
) -> Polygon:
    """Project a stored geodetic polygon into the plane.

    Raises:
        GeometryError: If the stored rings are malformed or the polygon is
            invalid or empty
    """
    _check_ring(ring, "exterior ring")
    for index, hole in enumerate(holes):
        _check_ring(hole, f"hole {index}")

    try:
        polygon = Polygon(
            projection.forward_ring(ring),
            [projection.forward_ring(hole) for hole in holes],
        )
    except (ValueError, TypeError) as exc:
        raise GeometryError(f"cannot build polygon: {exc}") from exc

    if polygon.is_empty or polygon.area <= 0:
        raise GeometryError("polygon encloses no area")
    if not polygon.is_valid:
        raise GeometryError(f"invalid polygon: {shapely.is_valid_reason(polygon)}")
    return polygon


def close_ring(coords: Iterable[tuple[float, float]]) -> Ring:
    ring = tuple((float(x), float(y)) for x, y in coords)
    if ring and ring[0] != ring[-1]:
        ring = (*ring, ring[0])
    return ring


def to_geodetic_rings(polygon: Polygon, projection: LocalProjection) -> tuple[Ring, tuple[Ring, ...]]:
    """Reproject a planar polygon into closed ``(lng, lat)`` rings."""

    polygon = normalize_winding(polygon)
    exterior = close_ring(projection.inverse_ring(polygon.exterior.coords))
    holes = tuple(close_ring(projection.inverse_ring(h.coords)) for h in polygon.interiors)
    return exterior, holes

"""Polygon construction from closed loops.

Geodetic coordinates are not equal-area, so a loop is projected onto a local
tangent plane before area and centroid are computed:

1. Centre an equirectangular projection on the loop's mean position.
2. Project every vertex to planar metres.
3. Repair self-intersecting traces, keeping the largest valid piece.
4. Shoelace area, counter-clockwise exterior.
5. Perimeter from great-circle distances between the geodetic vertices.
6. Planar centroid reprojected to a geodetic centre.
"""

from __future__ import annotations

from collections.abc import Sequence

from shapely.geometry import Polygon

from conquest.domain.enums import PathRejection
from conquest.domain.errors import PathValidationError
from conquest.domain.geometry import close_ring, normalize_winding, repair, to_geodetic_rings
from conquest.domain.models import ClosedLoop, LatLng, Ring, TerritoryShape
from conquest.domain.rules_config import DEFAULT_RULES, RulesConfig, TerritoryRules
from conquest.utils.geodesy import LocalProjection, ring_length, shoelace_signed_area


def shape_from_rings(
    ring: Sequence[tuple[float, float]],
    holes: Sequence[Sequence[tuple[float, float]]] = (),
    projection: LocalProjection | None = None,
) -> TerritoryShape:
    """Derive area, perimeter and centre for geodetic rings.

    No size limits are applied; use :func:`build_polygon` for new claims.
    """
    exterior = close_ring(ring)
    interiors = tuple(close_ring(h) for h in holes)
    projection = projection or LocalProjection.centered_on(exterior[:-1])

    planar_exterior = projection.forward_ring(exterior)
    planar_holes = [projection.forward_ring(h) for h in interiors]

    area = abs(shoelace_signed_area(planar_exterior)) - sum(
        abs(shoelace_signed_area(h)) for h in planar_holes
    )
    perimeter = ring_length(exterior) + sum(ring_length(h) for h in interiors)

    centroid = Polygon(planar_exterior, planar_holes).centroid
    lng, lat = projection.inverse(centroid.x, centroid.y)

    return TerritoryShape(
        ring=exterior,
        holes=interiors,
        area=max(area, 0.0),
        perimeter=perimeter,
        center=LatLng(lat=lat, lng=lng),
    )


def _check_limits(shape: TerritoryShape, rules: TerritoryRules) -> None:
    if shape.area <= 0:
        raise PathValidationError(PathRejection.DEGENERATE_AREA)
    if shape.area < rules.min_area_m2:
        raise PathValidationError(PathRejection.TOO_SMALL, f"area {shape.area:.1f}m²")
    if shape.area > rules.max_area_m2:
        raise PathValidationError(PathRejection.TOO_LARGE, f"area {shape.area:.0f}m²")
    if shape.perimeter > rules.max_perimeter_m:
        raise PathValidationError(PathRejection.TOO_LARGE, f"perimeter {shape.perimeter:.0f}m")
    vertex_count = len(shape.ring) - 1 + sum(len(h) - 1 for h in shape.holes)
    if vertex_count > rules.max_vertices:
        raise PathValidationError(PathRejection.TOO_LARGE, f"{vertex_count} vertices")


def build_polygon(loop: ClosedLoop, *, rules: RulesConfig = DEFAULT_RULES) -> TerritoryShape:
    """Turn a closed loop into a measured, counter-clockwise territory shape.

    Args:
        loop: Sanitized loop
        rules: Rule constants (territory size limits)

    Returns:
        Shape with at least three vertices, positive area and CCW exterior

    Raises:
        PathValidationError: ``DEGENERATE_AREA``, ``TOO_SMALL`` or ``TOO_LARGE``
    """
    coords = loop.coordinates()
    if len(coords) < 3:
        raise PathValidationError(PathRejection.DEGENERATE_AREA, "fewer than 3 vertices")

    projection = LocalProjection.centered_on(coords)
    planar = projection.forward_ring(coords)

    try:
        traced = Polygon(planar)
    except ValueError as exc:
        raise PathValidationError(PathRejection.DEGENERATE_AREA, str(exc)) from exc

    repaired = repair(traced)
    if repaired is None or repaired.is_empty or repaired.area <= 0:
        raise PathValidationError(PathRejection.DEGENERATE_AREA)

    ring: Ring
    holes: tuple[Ring, ...] = ()
    if repaired is traced:
        # Simple trace: the ring is the recorded fixes
        ring = close_ring(coords)
        if shoelace_signed_area(planar) < 0:
            ring = tuple(reversed(ring))
    else:
        ring, holes = to_geodetic_rings(normalize_winding(repaired), projection)

    shape = shape_from_rings(ring, holes, projection)
    _check_limits(shape, rules.territory)
    return shape

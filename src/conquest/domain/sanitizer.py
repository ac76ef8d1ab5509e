"""Recorded path validation.

Pure functions that turn a raw GPS trace into a :class:`ClosedLoop` or reject
it with a :class:`PathRejection`. Activity-level thresholds are enforced
upstream as well; they are re-checked here on the cleaned trace.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from conquest.domain.enums import ActivityType, PathRejection, SpeedVerdict
from conquest.domain.errors import PathValidationError
from conquest.domain.models import ClosedLoop, GeodeticPoint
from conquest.domain.rules_config import DEFAULT_RULES, RulesConfig, SpeedRules
from conquest.utils.geodesy import (
    LocalProjection,
    haversine_distance,
    is_valid_coordinate,
    shoelace_signed_area,
)

logger = logging.getLogger(__name__)

# Planar area (m²) below which a loop is considered to enclose nothing
_ZERO_AREA_M2 = 1e-6


def _distance(a: GeodeticPoint, b: GeodeticPoint) -> float:
    return haversine_distance(a.lat, a.lng, b.lat, b.lng)


def drop_invalid_points(points: Iterable[GeodeticPoint]) -> list[GeodeticPoint]:
    """Remove fixes with non-finite or out-of-range coordinates."""

    return [p for p in points if is_valid_coordinate(p.lat, p.lng)]


def drop_near_duplicates(points: list[GeodeticPoint], epsilon_m: float) -> list[GeodeticPoint]:
    """Remove consecutive fixes closer than ``epsilon_m`` to the last kept fix."""

    kept: list[GeodeticPoint] = []
    for point in points:
        if kept and _distance(kept[-1], point) < epsilon_m:
            continue
        kept.append(point)
    return kept


def walked_distance(points: list[GeodeticPoint], max_segment_m: float) -> float:
    """Path length in metres, ignoring segments that look like GPS jumps."""

    total = 0.0
    for a, b in zip(points, points[1:], strict=False):
        step = _distance(a, b)
        if 0 < step < max_segment_m:
            total += step
    return total


def distinct_vertex_count(points: list[GeodeticPoint], epsilon_m: float) -> int:
    """Vertex count, not counting a final fix that merely repeats the first."""

    if len(points) > 1 and _distance(points[0], points[-1]) < epsilon_m:
        return len(points) - 1
    return len(points)


def check_speed(
    point: GeodeticPoint, activity_type: ActivityType, rules: SpeedRules = DEFAULT_RULES.speed
) -> SpeedVerdict:
    """Compare a fix's reported speed with the activity's plausible maximum.

    Fixes without a speed reading always pass.
    """
    if point.speed is None:
        return SpeedVerdict.OK
    if activity_type is ActivityType.WALK and point.speed > rules.walk_max_ms:
        return SpeedVerdict.TOO_FAST_FOR_WALK
    if activity_type is ActivityType.RUN and point.speed > rules.run_max_ms:
        return SpeedVerdict.TOO_FAST_FOR_RUN
    if activity_type is ActivityType.RIDE and point.speed > rules.ride_max_ms:
        return SpeedVerdict.TOO_FAST_FOR_RIDE
    return SpeedVerdict.OK


def sanitize_path(
    points: Iterable[GeodeticPoint],
    *,
    activity_type: ActivityType | None = None,
    rules: RulesConfig = DEFAULT_RULES,
) -> ClosedLoop:
    """Validate and normalise a recorded path into a closed loop.

    Sanitizing a loop this function produced returns an equal loop.

    Args:
        points: Recorded fixes in capture order
        activity_type: When given, fixes too fast for the activity are counted
            as suspicious (never rejected)
        rules: Rule constants

    Returns:
        The cleaned closed loop

    Raises:
        PathValidationError: With the first rejection reason that applies
    """
    path_rules = rules.path
    cleaned = drop_near_duplicates(drop_invalid_points(points), path_rules.dedup_epsilon_m)

    if len(cleaned) < path_rules.min_path_points:
        raise PathValidationError(
            PathRejection.TOO_FEW_POINTS, f"{len(cleaned)} usable points"
        )

    distance = walked_distance(cleaned, path_rules.max_segment_jump_m)
    if distance < path_rules.min_distance_m:
        raise PathValidationError(PathRejection.INSUFFICIENT_DISTANCE, f"walked {distance:.1f}m")

    duration_s = (cleaned[-1].timestamp - cleaned[0].timestamp) / 1000.0
    if duration_s < path_rules.min_duration_s:
        raise PathValidationError(PathRejection.INSUFFICIENT_DURATION, f"lasted {duration_s:.1f}s")

    vertices = distinct_vertex_count(cleaned, path_rules.dedup_epsilon_m)
    if vertices < path_rules.min_loop_vertices:
        raise PathValidationError(PathRejection.TOO_FEW_POINTS, f"{vertices} distinct vertices")

    gap = _distance(cleaned[0], cleaned[-1])
    if gap > path_rules.closure_tolerance_m:
        raise PathValidationError(PathRejection.NOT_CLOSED, f"endpoints {gap:.1f}m apart")

    coords = [(p.lng, p.lat) for p in cleaned]
    projection = LocalProjection.centered_on(coords)
    if abs(shoelace_signed_area(projection.forward_ring(coords))) <= _ZERO_AREA_M2:
        raise PathValidationError(PathRejection.DEGENERATE_AREA)

    suspicious = 0
    if activity_type is not None:
        suspicious = sum(
            1 for p in cleaned if check_speed(p, activity_type, rules.speed) is not SpeedVerdict.OK
        )
        if suspicious:
            logger.warning(
                "%d of %d fixes exceed the plausible %s speed", suspicious, len(cleaned), activity_type
            )

    return ClosedLoop(points=tuple(cleaned), suspicious_point_count=suspicious)

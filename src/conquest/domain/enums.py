"""Enumerations used across the conquest domain."""

from __future__ import annotations

from enum import StrEnum


class ActivityType(StrEnum):
    """How the loop was travelled."""

    WALK = "WALK"
    RUN = "RUN"
    RIDE = "RIDE"


class PathRejection(StrEnum):
    """Reasons a recorded path cannot become a territory."""

    TOO_FEW_POINTS = "too_few_points"
    NOT_CLOSED = "not_closed"
    DEGENERATE_AREA = "degenerate_area"
    INSUFFICIENT_DISTANCE = "insufficient_distance"
    INSUFFICIENT_DURATION = "insufficient_duration"
    TOO_SMALL = "too_small"
    TOO_LARGE = "too_large"


class SelfOverlapPolicy(StrEnum):
    """What a new claim does to overlapping territories of the same owner."""

    IGNORE = "ignore"
    MERGE = "merge"


class SpeedVerdict(StrEnum):
    """Result of checking a recorded speed against the activity type."""

    OK = "ok"
    TOO_FAST_FOR_WALK = "too_fast_for_walk"
    TOO_FAST_FOR_RUN = "too_fast_for_run"
    TOO_FAST_FOR_RIDE = "too_fast_for_ride"

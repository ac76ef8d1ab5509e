"""Declarative rule configuration for the conquest domain."""

from __future__ import annotations

from dataclasses import dataclass

from .enums import SelfOverlapPolicy


@dataclass(frozen=True, slots=True)
class PathRules:
    """Thresholds a recorded path must meet before it becomes a loop."""

    min_path_points: int = 2
    min_loop_vertices: int = 4
    min_distance_m: float = 10.0
    min_duration_s: float = 5.0
    dedup_epsilon_m: float = 1.0
    closure_tolerance_m: float = 200.0
    max_segment_jump_m: float = 1000.0  # longer segments are GPS glitches


@dataclass(frozen=True, slots=True)
class TerritoryRules:
    """Size bounds for a claimed polygon."""

    min_area_m2: float = 10.0
    max_area_m2: float = 10_000_000.0  # 10 km²
    max_perimeter_m: float = 100_000.0
    max_vertices: int = 50_000


@dataclass(frozen=True, slots=True)
class OverlapRules:
    """Conflict resolution constants."""

    destruction_threshold: float = 0.95
    overlap_epsilon_m2: float = 1.0
    self_overlap: SelfOverlapPolicy = SelfOverlapPolicy.IGNORE


@dataclass(frozen=True, slots=True)
class ClaimRules:
    """Per-owner claim pacing."""

    claim_cooldown_s: float = 30.0


@dataclass(frozen=True, slots=True)
class SpeedRules:
    """Upper speed bounds per activity type, in m/s."""

    walk_max_ms: float = 7 / 3.6
    run_max_ms: float = 25 / 3.6
    ride_max_ms: float = 50 / 3.6


@dataclass(frozen=True, slots=True)
class RulesConfig:
    """Top-level configuration container for all subsystems."""

    path: PathRules = PathRules()
    territory: TerritoryRules = TerritoryRules()
    overlap: OverlapRules = OverlapRules()
    claims: ClaimRules = ClaimRules()
    speed: SpeedRules = SpeedRules()


DEFAULT_RULES = RulesConfig()

"""Conflict resolution between a new territory and existing ones.

Candidates are processed oldest claim first (ties broken by id) so repeated
runs over the same inputs produce identical results. Every rival candidate
ends in exactly one outcome:

``Destroyed``
    The overlap covers at least ``destruction_threshold`` of the candidate,
    or the piece left over would be smaller than a valid territory.
``Clipped``
    The candidate keeps the largest piece left after removing the new
    territory.
``Untouched``
    The overlap is below ``overlap_epsilon_m2``.

All clipping happens in one local projection centred on the new territory.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime

from shapely.errors import GEOSException
from shapely.geometry import Polygon

from conquest.domain.enums import SelfOverlapPolicy
from conquest.domain.errors import GeometryError
from conquest.domain.geometry import (
    area_of,
    compute_difference,
    compute_intersection,
    compute_union,
    largest_polygon,
    to_geodetic_rings,
    to_planar_polygon,
)
from conquest.domain.models import (
    Clipped,
    ConflictOutcome,
    Destroyed,
    InvasionID,
    Territory,
    TerritoryClaimEvent,
    TerritoryID,
    TerritoryInvasion,
    Untouched,
    new_identifier,
    utc_now,
)
from conquest.domain.polygon import shape_from_rings
from conquest.domain.rules_config import DEFAULT_RULES, RulesConfig
from conquest.utils.geodesy import LocalProjection

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class OverlapResolution:
    """What resolving one new territory against its candidates changed."""

    new_territory: Territory
    modified_territories: tuple[Territory, ...] = ()
    deleted_territory_ids: tuple[TerritoryID, ...] = ()
    absorbed_territory_ids: tuple[TerritoryID, ...] = ()
    invasions: tuple[TerritoryInvasion, ...] = ()
    outcomes: tuple[ConflictOutcome, ...] = ()
    skipped_territory_ids: tuple[TerritoryID, ...] = ()
    total_conquered_area: float = 0.0

    @property
    def has_conquests(self) -> bool:
        return bool(self.invasions)


@dataclass(slots=True)
class _Accumulator:
    modified: list[Territory] = field(default_factory=list)
    deleted: list[TerritoryID] = field(default_factory=list)
    absorbed: list[TerritoryID] = field(default_factory=list)
    absorbed_polygons: list[Polygon] = field(default_factory=list)
    invasions: list[TerritoryInvasion] = field(default_factory=list)
    outcomes: list[ConflictOutcome] = field(default_factory=list)
    skipped: list[TerritoryID] = field(default_factory=list)


def order_candidates(candidates: Iterable[Territory]) -> list[Territory]:
    """Oldest claim first, then by id."""

    return sorted(candidates, key=lambda t: (t.claimed_at, t.id))


def classify_conflict(
    candidate: Territory,
    candidate_polygon: Polygon,
    new_polygon: Polygon,
    projection: LocalProjection,
    *,
    rules: RulesConfig = DEFAULT_RULES,
) -> ConflictOutcome:
    """Decide what happens to one rival territory.

    Args:
        candidate: The rival territory
        candidate_polygon: Its planar polygon in ``projection``
        new_polygon: The conquering territory in ``projection``
        projection: Shared local projection
        rules: Rule constants (thresholds and minimum area)

    Returns:
        ``Destroyed``, ``Clipped`` or ``Untouched``
    """
    overlap = area_of(compute_intersection(candidate_polygon, new_polygon))
    if overlap < rules.overlap.overlap_epsilon_m2:
        return Untouched(territory_id=candidate.id)

    if overlap >= rules.overlap.destruction_threshold * candidate_polygon.area:
        return Destroyed(territory_id=candidate.id, overlap_area=candidate.area)

    remainder = largest_polygon(compute_difference(candidate_polygon, new_polygon))
    if remainder is None:
        return Destroyed(territory_id=candidate.id, overlap_area=candidate.area)

    ring, holes = to_geodetic_rings(remainder, projection)
    # Stored area times the planar share kept, so a clip can only shrink it
    shape = shape_from_rings(ring, holes, projection)
    shape = replace(shape, area=candidate.area * remainder.area / candidate_polygon.area)
    if shape.area < rules.territory.min_area_m2:
        return Destroyed(territory_id=candidate.id, overlap_area=candidate.area)

    return Clipped(territory_id=candidate.id, overlap_area=overlap, remainder=shape)


def _invasion(
    candidate: Territory,
    new_territory: Territory,
    *,
    overlap_area: float,
    destroyed: bool,
    invader_username: str | None,
    created_at: datetime,
    id_factory: Callable[[], str],
) -> TerritoryInvasion:
    return TerritoryInvasion(
        id=InvasionID(id_factory()),
        invaded_user_id=candidate.owner_id,
        invader_user_id=new_territory.owner_id,
        invader_username=invader_username,
        invaded_territory_id=candidate.id,
        new_territory_id=new_territory.id,
        resulting_territory_id=None if destroyed else candidate.id,
        overlap_area=overlap_area,
        territory_was_destroyed=destroyed,
        created_at=created_at,
    )


def _clipped_territory(
    candidate: Territory, outcome: Clipped, new_territory: Territory, now: datetime
) -> Territory:
    shape = outcome.remainder
    return replace(
        candidate,
        ring=shape.ring,
        holes=shape.holes,
        area=shape.area,
        perimeter=shape.perimeter,
        center=shape.center,
        history=[
            *candidate.history,
            TerritoryClaimEvent(
                claimed_by=new_territory.owner_id,
                claimed_at=now,
                activity_id=new_territory.activity_id,
                previous_owner_id=candidate.owner_id,
            ),
        ],
    )


def _merge(
    new_territory: Territory,
    new_polygon: Polygon,
    absorbed: Sequence[Polygon],
    projection: LocalProjection,
) -> Territory:
    merged = largest_polygon(compute_union([new_polygon, *absorbed]))
    if merged is None:
        return new_territory
    ring, holes = to_geodetic_rings(merged, projection)
    shape = shape_from_rings(ring, holes, projection)
    return replace(
        new_territory,
        ring=shape.ring,
        holes=shape.holes,
        area=shape.area,
        perimeter=shape.perimeter,
        center=shape.center,
    )


def _resolve_own(
    candidate: Territory,
    new_polygon: Polygon,
    projection: LocalProjection,
    acc: _Accumulator,
    rules: RulesConfig,
) -> None:
    if rules.overlap.self_overlap is SelfOverlapPolicy.IGNORE:
        acc.outcomes.append(Untouched(territory_id=candidate.id))
        return

    candidate_polygon = to_planar_polygon(candidate.ring, candidate.holes, projection)
    overlap = area_of(compute_intersection(candidate_polygon, new_polygon))
    if overlap < rules.overlap.overlap_epsilon_m2:
        acc.outcomes.append(Untouched(territory_id=candidate.id))
        return

    acc.absorbed.append(candidate.id)
    acc.absorbed_polygons.append(candidate_polygon)
    acc.deleted.append(candidate.id)
    acc.outcomes.append(Destroyed(territory_id=candidate.id, overlap_area=overlap))


def resolve_overlaps(
    new_territory: Territory,
    candidates: Iterable[Territory],
    *,
    invader_username: str | None = None,
    rules: RulesConfig = DEFAULT_RULES,
    clock: Callable[[], datetime] = utc_now,
    id_factory: Callable[[], str] = new_identifier,
) -> OverlapResolution:
    """Resolve every conflict between ``new_territory`` and ``candidates``.

    Args:
        new_territory: The freshly built conquering territory
        candidates: Territories whose bounding box meets the new one
        invader_username: Copied onto each invasion record
        rules: Rule constants
        clock: Source of invasion and claim-event timestamps
        id_factory: Source of invasion ids

    Returns:
        The resolution. Candidates with malformed geometry are listed in
        ``skipped_territory_ids`` and otherwise left alone.
    """
    try:
        projection = LocalProjection.centered_on(new_territory.ring[:-1])
        new_polygon = to_planar_polygon(new_territory.ring, new_territory.holes, projection)
    except (GeometryError, ValueError) as exc:
        logger.warning(
            "New territory %s has malformed geometry, skipping resolution: %s", new_territory.id, exc
        )
        return OverlapResolution(new_territory=new_territory)

    now = clock()
    acc = _Accumulator()

    for candidate in order_candidates(candidates):
        if candidate.id == new_territory.id:
            continue

        try:
            if candidate.owner_id == new_territory.owner_id:
                _resolve_own(candidate, new_polygon, projection, acc, rules)
                continue

            candidate_polygon = to_planar_polygon(candidate.ring, candidate.holes, projection)
            outcome = classify_conflict(
                candidate, candidate_polygon, new_polygon, projection, rules=rules
            )
        except (GeometryError, GEOSException) as exc:
            logger.warning("Skipping territory %s with malformed geometry: %s", candidate.id, exc)
            acc.skipped.append(candidate.id)
            continue

        acc.outcomes.append(outcome)
        match outcome:
            case Destroyed(territory_id=territory_id, overlap_area=overlap_area):
                acc.deleted.append(territory_id)
                acc.invasions.append(
                    _invasion(
                        candidate,
                        new_territory,
                        overlap_area=overlap_area,
                        destroyed=True,
                        invader_username=invader_username,
                        created_at=now,
                        id_factory=id_factory,
                    )
                )
            case Clipped(overlap_area=overlap_area):
                acc.modified.append(_clipped_territory(candidate, outcome, new_territory, now))
                acc.invasions.append(
                    _invasion(
                        candidate,
                        new_territory,
                        overlap_area=overlap_area,
                        destroyed=False,
                        invader_username=invader_username,
                        created_at=now,
                        id_factory=id_factory,
                    )
                )
            case Untouched():
                pass

    resolved = new_territory
    if acc.absorbed_polygons:
        resolved = _merge(new_territory, new_polygon, acc.absorbed_polygons, projection)
        logger.info(
            "Merged %d territories of owner %s into %s",
            len(acc.absorbed),
            new_territory.owner_id,
            new_territory.id,
        )

    return OverlapResolution(
        new_territory=resolved,
        modified_territories=tuple(acc.modified),
        deleted_territory_ids=tuple(acc.deleted),
        absorbed_territory_ids=tuple(acc.absorbed),
        invasions=tuple(acc.invasions),
        outcomes=tuple(acc.outcomes),
        skipped_territory_ids=tuple(acc.skipped),
        total_conquered_area=sum(i.overlap_area for i in acc.invasions),
    )

"""Conquest Service.

The single entry point that turns a recorded path into a committed territory:

1. Sanitize the path and build the polygon (nothing stored on rejection).
2. Enforce the per-owner claim cooldown.
3. Unless event mode is on, find candidates through the spatial index and
   resolve overlaps against them.
4. Write everything in one transaction guarded by the store revision, and
   recompute from fresh state when another conquest committed first.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence
from dataclasses import replace
from datetime import datetime

from conquest.domain.enums import ActivityType
from conquest.domain.errors import (
    ConflictError,
    ConquestError,
    RateLimitError,
    StaleStateError,
    ValidationError,
)
from conquest.domain.event_mode import EventModeGate
from conquest.domain.models import (
    ActivityID,
    ConquerResult,
    GeodeticPoint,
    Territory,
    TerritoryClaimEvent,
    TerritoryID,
    TerritoryShape,
    UserID,
    new_identifier,
    utc_now,
)
from conquest.domain.overlap import resolve_overlaps
from conquest.domain.polygon import build_polygon
from conquest.domain.rules_config import DEFAULT_RULES, RulesConfig
from conquest.domain.sanitizer import sanitize_path
from conquest.domain.spatial_index import SpatialIndex
from conquest.interfaces.activity import IActivityProvider
from conquest.interfaces.policy import IPolicyProvider
from conquest.interfaces.store import ITerritoryStore

logger = logging.getLogger(__name__)

DEFAULT_MAX_CONFLICT_RETRIES = 3


class ConquestService:
    """Coordinates one conquest from raw path to committed result.

    Args:
        store: Territory persistence
        policy: Decides whether conflicts are resolved (event mode)
        index: Spatial index cache; a private one is built when omitted
        activities: Source of finished activities for ``claim_activity``
        rules: Rule constants
        max_conflict_retries: Recomputations allowed after a stale write
        clock: Source of claim timestamps
        id_factory: Source of territory and invasion ids
    """

    def __init__(
        self,
        store: ITerritoryStore,
        policy: IPolicyProvider,
        *,
        index: SpatialIndex | None = None,
        activities: IActivityProvider | None = None,
        rules: RulesConfig = DEFAULT_RULES,
        max_conflict_retries: int = DEFAULT_MAX_CONFLICT_RETRIES,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = new_identifier,
    ):
        self.store = store
        self.gate = EventModeGate(policy)
        self.index = index if index is not None else SpatialIndex()
        self.activities = activities
        self.rules = rules
        self.max_conflict_retries = max_conflict_retries
        self._clock = clock
        self._id_factory = id_factory

    def conquer(
        self,
        path: Sequence[GeodeticPoint],
        owner_id: UserID,
        activity_id: ActivityID,
        *,
        owner_username: str | None = None,
        activity_type: ActivityType | None = None,
        name: str = "",
    ) -> ConquerResult:
        """Claim the area enclosed by ``path`` for ``owner_id``.

        Args:
            path: Recorded fixes in capture order
            owner_id: Claiming user
            activity_id: Activity the path belongs to
            owner_username: Shown to invaded users on their invasion records
            activity_type: Enables speed plausibility checks
            name: Display name of the new territory

        Returns:
            The committed result

        Raises:
            PathValidationError: The path cannot become a territory
            RateLimitError: The owner claimed too recently
            ConflictError: Concurrent conquests kept invalidating the result
            PersistenceError: The store failed to commit
        """
        loop = sanitize_path(path, activity_type=activity_type, rules=self.rules)
        shape = build_polygon(loop, rules=self.rules)
        now = self._clock()
        territory = self._new_territory(shape, owner_id, activity_id, name, now)

        self._check_rate_limit(owner_id, now)

        attempts = self.max_conflict_retries + 1
        for attempt in range(1, attempts + 1):
            revision = self.store.current_revision()
            result = self._resolve(territory, revision, owner_username)
            try:
                new_revision = self.store.apply_conquest(result, revision)
            except StaleStateError as exc:
                self.index.invalidate()
                logger.warning(
                    "Conquest %s went stale on attempt %d of %d: %s", territory.id, attempt, attempts, exc
                )
                continue

            result = _with_committed_versions(result)
            self._update_index(result, revision, new_revision)
            logger.info(
                "Owner %s conquered %.1f m² with territory %s (%d invasions)",
                owner_id,
                result.total_conquered_area,
                result.new_territory.id,
                len(result.invasions),
            )
            return result

        raise ConflictError(
            f"conquest {territory.id} conflicted with concurrent writes {attempts} times"
        )

    def claim_activity(self, activity_id: ActivityID, *, name: str = "") -> ConquerResult:
        """Conquer with the first recorded segment of a finished activity.

        Raises:
            ValidationError: The activity does not exist or is not finished
        """
        if self.activities is None:
            raise ConquestError("no activity provider configured")
        activity = self.activities.get_finished_activity(activity_id)
        if activity is None:
            raise ValidationError(f"activity {activity_id} does not exist or is not finished")
        return self.conquer(
            activity.primary_path(),
            activity.owner_id,
            activity.id,
            owner_username=activity.owner_username,
            activity_type=activity.activity_type,
            name=name,
        )

    def _new_territory(
        self,
        shape: TerritoryShape,
        owner_id: UserID,
        activity_id: ActivityID,
        name: str,
        now: datetime,
    ) -> Territory:
        return Territory(
            id=TerritoryID(self._id_factory()),
            owner_id=owner_id,
            activity_id=activity_id,
            name=name,
            claimed_at=now,
            ring=shape.ring,
            holes=shape.holes,
            area=shape.area,
            perimeter=shape.perimeter,
            center=shape.center,
            history=[TerritoryClaimEvent(claimed_by=owner_id, claimed_at=now, activity_id=activity_id)],
        )

    def _check_rate_limit(self, owner_id: UserID, now: datetime) -> None:
        cooldown = self.rules.claims.claim_cooldown_s
        if cooldown <= 0:
            return
        latest = self.store.latest_claim_at(owner_id)
        if latest is None:
            return
        elapsed = (now - latest).total_seconds()
        if elapsed < cooldown:
            raise RateLimitError(owner_id, cooldown - elapsed)

    def _resolve(
        self, territory: Territory, revision: int, owner_username: str | None
    ) -> ConquerResult:
        if not self.gate.is_conflict_resolution_active():
            return ConquerResult(new_territory=territory, total_conquered_area=territory.area)

        if not self.index.is_current(revision):
            self.index.rebuild(self.store.all_bounds(), revision)
            logger.debug("Rebuilt spatial index at revision %d (%d territories)", revision, len(self.index))

        candidate_ids = [tid for tid in self.index.query_candidates(territory.bbox) if tid != territory.id]
        candidates = self.store.load_territories(candidate_ids)
        resolution = resolve_overlaps(
            territory,
            candidates,
            invader_username=owner_username,
            rules=self.rules,
            clock=self._clock,
            id_factory=self._id_factory,
        )

        if resolution.invasions:
            total = resolution.total_conquered_area
        else:
            total = resolution.new_territory.area

        return ConquerResult(
            new_territory=resolution.new_territory,
            modified_territories=resolution.modified_territories,
            deleted_territory_ids=resolution.deleted_territory_ids,
            absorbed_territory_ids=resolution.absorbed_territory_ids,
            invasions=resolution.invasions,
            total_conquered_area=total,
        )

    def _update_index(self, result: ConquerResult, revision: int, new_revision: int) -> None:
        if not self.index.is_current(revision):
            self.index.invalidate()
            return
        for territory_id in result.deleted_territory_ids:
            self.index.remove(territory_id)
        for territory in result.modified_territories:
            self.index.update(territory.id, territory.bbox)
        self.index.insert(result.new_territory.id, result.new_territory.bbox)
        self.index.revision = new_revision


def _with_committed_versions(result: ConquerResult) -> ConquerResult:
    """The result with territory versions as stored: new rows start at 1, each write adds one."""

    return replace(
        result,
        new_territory=replace(result.new_territory, version=1),
        modified_territories=tuple(replace(t, version=t.version + 1) for t in result.modified_territories),
    )

"""SQLAlchemy-backed territory store.

Translates between the in-memory domain dataclasses and the ORM rows in
:mod:`conquest.models`. Every conquest is written in one transaction that
first compare-and-swaps the store revision, so a result computed against an
older snapshot is refused with :class:`StaleStateError` and nothing is
written.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from conquest.domain import models as dm
from conquest.domain.errors import (
    PersistenceError,
    StaleStateError,
    TerritoryNotFoundError,
    ValidationError,
)
from conquest.models import (
    InvasionRow,
    StoreRevision,
    TerritoryClaimEventRow,
    TerritoryRow,
    as_utc,
)

logger = logging.getLogger(__name__)

REVISION_KEY = StoreRevision.TERRITORIES

# Float noise allowed when checking that a clipped territory only shrank
_AREA_SHRINK_TOLERANCE_M2 = 0.5


def _ring_to_json(ring: dm.Ring) -> list[list[float]]:
    return [[lng, lat] for lng, lat in ring]


def _ring_from_json(data: Sequence[Sequence[float]]) -> dm.Ring:
    return tuple((float(point[0]), float(point[1])) for point in data)


def _event_row(sequence: int, event: dm.TerritoryClaimEvent) -> TerritoryClaimEventRow:
    return TerritoryClaimEventRow(
        sequence=sequence,
        claimed_by=event.claimed_by,
        claimed_at=event.claimed_at,
        activity_id=event.activity_id,
        previous_owner_id=event.previous_owner_id,
    )


def _write_shape(row: TerritoryRow, territory: dm.Territory) -> None:
    bbox = territory.bbox
    row.polygon = _ring_to_json(territory.ring)
    row.holes = [_ring_to_json(hole) for hole in territory.holes]
    row.area = territory.area
    row.perimeter = territory.perimeter
    row.center_lat = territory.center.lat
    row.center_lng = territory.center.lng
    row.min_lng = bbox.min_lng
    row.min_lat = bbox.min_lat
    row.max_lng = bbox.max_lng
    row.max_lat = bbox.max_lat


def territory_from_row(row: TerritoryRow) -> dm.Territory:
    """Map an ORM row (with its history loaded) to the domain dataclass."""

    return dm.Territory(
        id=dm.TerritoryID(row.id),
        owner_id=dm.UserID(row.owner_id),
        activity_id=dm.ActivityID(row.activity_id),
        name=row.name,
        claimed_at=as_utc(row.claimed_at),
        ring=_ring_from_json(row.polygon),
        holes=tuple(_ring_from_json(hole) for hole in row.holes or ()),
        area=row.area,
        perimeter=row.perimeter,
        center=dm.LatLng(lat=row.center_lat, lng=row.center_lng),
        history=[
            dm.TerritoryClaimEvent(
                claimed_by=dm.UserID(event.claimed_by),
                claimed_at=as_utc(event.claimed_at),
                activity_id=dm.ActivityID(event.activity_id),
                previous_owner_id=dm.UserID(event.previous_owner_id) if event.previous_owner_id else None,
            )
            for event in row.history
        ],
        version=row.version,
    )


def invasion_from_row(row: InvasionRow) -> dm.TerritoryInvasion:
    return dm.TerritoryInvasion(
        id=dm.InvasionID(row.id),
        invaded_user_id=dm.UserID(row.invaded_user_id),
        invader_user_id=dm.UserID(row.invader_user_id),
        invader_username=row.invader_username,
        invaded_territory_id=dm.TerritoryID(row.invaded_territory_id),
        new_territory_id=dm.TerritoryID(row.new_territory_id),
        resulting_territory_id=(
            dm.TerritoryID(row.resulting_territory_id) if row.resulting_territory_id else None
        ),
        overlap_area=row.overlap_area,
        territory_was_destroyed=row.territory_was_destroyed,
        created_at=as_utc(row.created_at),
        seen=row.seen,
    )


@contextmanager
def _storage_errors(action: str) -> Iterator[None]:
    try:
        yield
    except StaleDataError as exc:
        raise StaleStateError(f"{action}: a territory changed concurrently") from exc
    except SQLAlchemyError as exc:
        logger.error("Storage failure while trying to %s: %s", action, exc)
        raise PersistenceError(f"{action} failed: {exc}") from exc


class SqlTerritoryStore:
    """Persist territories, invasions and the store revision with SQLAlchemy.

    Each public method runs in its own session from ``session_factory``.
    """

    def __init__(self, session_factory: sessionmaker[Session]) -> None:
        self._session_factory = session_factory

    # --- Conquest write path ----------------------------------------------------

    def current_revision(self) -> int:
        with _storage_errors("read store revision"), self._session_factory() as session:
            value = session.scalar(
                select(StoreRevision.value).where(StoreRevision.name == REVISION_KEY)
            )
            return int(value or 0)

    def all_bounds(self) -> list[dm.TerritoryBounds]:
        stmt = select(
            TerritoryRow.id,
            TerritoryRow.min_lng,
            TerritoryRow.min_lat,
            TerritoryRow.max_lng,
            TerritoryRow.max_lat,
        )
        with _storage_errors("read territory bounds"), self._session_factory() as session:
            return [
                dm.TerritoryBounds(
                    territory_id=dm.TerritoryID(row.id),
                    bbox=dm.BoundingBox(
                        min_lng=row.min_lng,
                        min_lat=row.min_lat,
                        max_lng=row.max_lng,
                        max_lat=row.max_lat,
                    ),
                )
                for row in session.execute(stmt)
            ]

    def load_territories(self, territory_ids: Sequence[dm.TerritoryID]) -> list[dm.Territory]:
        if not territory_ids:
            return []
        stmt = (
            select(TerritoryRow)
            .where(TerritoryRow.id.in_(list(territory_ids)))
            .options(selectinload(TerritoryRow.history))
        )
        with _storage_errors("load territories"), self._session_factory() as session:
            return [territory_from_row(row) for row in session.scalars(stmt)]

    def latest_claim_at(self, owner_id: dm.UserID) -> datetime | None:
        stmt = select(func.max(TerritoryClaimEventRow.claimed_at)).where(
            TerritoryClaimEventRow.claimed_by == owner_id
        )
        with _storage_errors("read latest claim"), self._session_factory() as session:
            value = session.scalar(stmt)
        return as_utc(value) if value is not None else None

    def apply_conquest(self, result: dm.ConquerResult, expected_revision: int) -> int:
        """Write a conquest result atomically.

        Args:
            result: Everything the conquest changed
            expected_revision: Store revision the result was computed against

        Returns:
            The store revision after the commit

        Raises:
            StaleStateError: Another conquest committed first
            ValidationError: A store-side guard rejected the result
            PersistenceError: The database refused the write
        """
        with _storage_errors("apply conquest"), self._session_factory() as session:
            with session.begin():
                revision = self._advance_revision(session, expected_revision)
                self._insert_territory(session, result.new_territory)
                owners = self._apply_modifications(session, result)
                owners.update(self._apply_deletions(session, result))
                self._insert_invasions(session, result, owners)

        logger.info(
            "Committed conquest %s by %s at revision %d (%d modified, %d deleted, %d invasions)",
            result.new_territory.id,
            result.new_territory.owner_id,
            revision,
            len(result.modified_territories),
            len(result.deleted_territory_ids),
            len(result.invasions),
        )
        return revision

    @staticmethod
    def _advance_revision(session: Session, expected_revision: int) -> int:
        bumped = session.execute(
            update(StoreRevision)
            .where(StoreRevision.name == REVISION_KEY, StoreRevision.value == expected_revision)
            .values(value=StoreRevision.value + 1)
        )
        if bumped.rowcount == 1:
            return expected_revision + 1

        if expected_revision != 0 or session.get(StoreRevision, REVISION_KEY) is not None:
            raise StaleStateError(f"store revision is no longer {expected_revision}")
        session.add(StoreRevision(name=REVISION_KEY, value=1))
        try:
            session.flush()
        except IntegrityError as exc:
            # Another first conquest inserted the counter after our lookup
            raise StaleStateError("store revision was created concurrently") from exc
        return 1

    @staticmethod
    def _insert_territory(session: Session, territory: dm.Territory) -> None:
        if session.get(TerritoryRow, territory.id) is not None:
            raise ValidationError(f"territory {territory.id} already exists")
        row = TerritoryRow(
            id=territory.id,
            owner_id=territory.owner_id,
            activity_id=territory.activity_id,
            name=territory.name,
            claimed_at=territory.claimed_at,
        )
        _write_shape(row, territory)
        row.history = [_event_row(i, event) for i, event in enumerate(territory.history)]
        session.add(row)

    @staticmethod
    def _apply_modifications(session: Session, result: dm.ConquerResult) -> dict[str, str]:
        invader = result.new_territory.owner_id
        owners: dict[str, str] = {}
        for territory in result.modified_territories:
            row = session.get(TerritoryRow, territory.id)
            if row is None:
                raise StaleStateError(f"territory {territory.id} no longer exists")
            if row.version != territory.version:
                raise StaleStateError(
                    f"territory {territory.id} is at version {row.version}, expected {territory.version}"
                )
            if row.owner_id == invader:
                raise ValidationError(f"cannot clip own territory {territory.id}")
            if territory.area > row.area + _AREA_SHRINK_TOLERANCE_M2:
                raise ValidationError(
                    f"territory {territory.id} would grow from {row.area:.1f} to {territory.area:.1f} m²"
                )

            _write_shape(row, territory)
            known = len(row.history)
            for sequence, event in enumerate(territory.history[known:], start=known):
                row.history.append(_event_row(sequence, event))
            owners[row.id] = row.owner_id
        return owners

    @staticmethod
    def _apply_deletions(session: Session, result: dm.ConquerResult) -> dict[str, str]:
        invader = result.new_territory.owner_id
        absorbed = set(result.absorbed_territory_ids)
        owners: dict[str, str] = {}
        for territory_id in result.deleted_territory_ids:
            row = session.get(TerritoryRow, territory_id)
            if row is None:
                raise StaleStateError(f"territory {territory_id} no longer exists")
            if territory_id in absorbed:
                if row.owner_id != invader:
                    raise ValidationError(f"cannot absorb territory {territory_id} of another owner")
            elif row.owner_id == invader:
                raise ValidationError(f"cannot destroy own territory {territory_id}")
            owners[row.id] = row.owner_id
            session.delete(row)
        return owners

    @staticmethod
    def _insert_invasions(
        session: Session, result: dm.ConquerResult, owners: dict[str, str]
    ) -> None:
        new_territory = result.new_territory
        for invasion in result.invasions:
            if invasion.invader_user_id != new_territory.owner_id:
                raise ValidationError(f"invasion {invasion.id} names the wrong invader")
            if invasion.new_territory_id != new_territory.id:
                raise ValidationError(f"invasion {invasion.id} names the wrong conquering territory")
            if owners.get(invasion.invaded_territory_id) != invasion.invaded_user_id:
                raise ValidationError(
                    f"invasion {invasion.id}: {invasion.invaded_user_id} does not own "
                    f"territory {invasion.invaded_territory_id}"
                )
            session.add(
                InvasionRow(
                    id=invasion.id,
                    invaded_user_id=invasion.invaded_user_id,
                    invader_user_id=invasion.invader_user_id,
                    invader_username=invasion.invader_username,
                    invaded_territory_id=invasion.invaded_territory_id,
                    new_territory_id=invasion.new_territory_id,
                    resulting_territory_id=invasion.resulting_territory_id,
                    overlap_area=invasion.overlap_area,
                    territory_was_destroyed=invasion.territory_was_destroyed,
                    seen=False,
                    created_at=invasion.created_at,
                )
            )

    # --- Read side --------------------------------------------------------------

    def list_territories(self, owner_id: dm.UserID | None = None) -> list[dm.Territory]:
        stmt = (
            select(TerritoryRow)
            .options(selectinload(TerritoryRow.history))
            .order_by(TerritoryRow.claimed_at, TerritoryRow.id)
        )
        if owner_id is not None:
            stmt = stmt.where(TerritoryRow.owner_id == owner_id)
        with _storage_errors("list territories"), self._session_factory() as session:
            return [territory_from_row(row) for row in session.scalars(stmt)]

    def get_territory(self, territory_id: dm.TerritoryID) -> dm.Territory:
        with _storage_errors("get territory"), self._session_factory() as session:
            row = session.get(
                TerritoryRow, territory_id, options=[selectinload(TerritoryRow.history)]
            )
            if row is None:
                raise TerritoryNotFoundError(territory_id)
            return territory_from_row(row)

    def total_area(self, owner_id: dm.UserID) -> float:
        stmt = select(func.coalesce(func.sum(TerritoryRow.area), 0.0)).where(
            TerritoryRow.owner_id == owner_id
        )
        with _storage_errors("sum territory area"), self._session_factory() as session:
            return float(session.scalar(stmt) or 0.0)

    def leaderboard(
        self, limit: int = 50, since: datetime | None = None
    ) -> list[tuple[dm.UserID, float, int]]:
        """Owners ranked by total area, largest first, ties by owner id.

        Args:
            limit: Maximum number of entries
            since: Only count territories claimed at or after this time
        """
        total = func.sum(TerritoryRow.area).label("total_area")
        stmt = (
            select(TerritoryRow.owner_id, total, func.count(TerritoryRow.id))
            .group_by(TerritoryRow.owner_id)
            .order_by(total.desc(), TerritoryRow.owner_id)
            .limit(limit)
        )
        if since is not None:
            stmt = stmt.where(TerritoryRow.claimed_at >= as_utc(since))
        with _storage_errors("build leaderboard"), self._session_factory() as session:
            return [
                (dm.UserID(owner), float(area), int(count))
                for owner, area, count in session.execute(stmt)
            ]

    def list_unseen_invasions(self, user_id: dm.UserID) -> list[dm.TerritoryInvasion]:
        stmt = (
            select(InvasionRow)
            .where(InvasionRow.invaded_user_id == user_id, InvasionRow.seen.is_(False))
            .order_by(InvasionRow.created_at.desc(), InvasionRow.id)
        )
        with _storage_errors("list unseen invasions"), self._session_factory() as session:
            return [invasion_from_row(row) for row in session.scalars(stmt)]

    def mark_invasions_seen(
        self, user_id: dm.UserID, invasion_ids: Sequence[dm.InvasionID] | None = None
    ) -> int:
        """Flag the user's unseen invasions as seen and return how many changed."""

        if invasion_ids is not None and not invasion_ids:
            return 0
        stmt: Any = (
            update(InvasionRow)
            .where(InvasionRow.invaded_user_id == user_id, InvasionRow.seen.is_(False))
            .values(seen=True)
        )
        if invasion_ids is not None:
            stmt = stmt.where(InvasionRow.id.in_(list(invasion_ids)))
        with _storage_errors("mark invasions seen"), self._session_factory() as session:
            with session.begin():
                changed = session.execute(stmt).rowcount
        return int(changed)

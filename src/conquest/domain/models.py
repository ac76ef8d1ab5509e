"""Dataclasses describing every conquest entity.

The rules layer works purely on these in-memory types. Persistence adapters
translate between them and storage (see :mod:`conquest.repository`), so the
sanitizer, polygon builder and overlap resolver never touch a database.

Geodetic rings are stored as ``(lng, lat)`` pairs, GeoJSON order, closed
(first vertex repeated at the end). Exterior rings wind counter-clockwise and
holes clockwise.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import NewType
from uuid import uuid4

from .enums import ActivityType

# --- Strongly typed identifiers -------------------------------------------------

TerritoryID = NewType("TerritoryID", str)
UserID = NewType("UserID", str)
ActivityID = NewType("ActivityID", str)
InvasionID = NewType("InvasionID", str)

Ring = tuple[tuple[float, float], ...]


def utc_now() -> datetime:
    """Current UTC time with timezone info."""

    return datetime.now(UTC)


def new_identifier() -> str:
    return str(uuid4())


# --- Recorded input -------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class GeodeticPoint:
    """One GPS fix. ``timestamp`` is epoch milliseconds, ``speed`` m/s."""

    lat: float
    lng: float
    timestamp: float
    speed: float | None = None
    accuracy: float | None = None
    altitude: float | None = None


@dataclass(frozen=True, slots=True)
class ClosedLoop:
    """A sanitized path eligible for conquest.

    Only :func:`conquest.domain.sanitizer.sanitize_path` should build these;
    the invariants (closure, vertex count, non-zero area) are checked there.
    """

    points: tuple[GeodeticPoint, ...]
    suspicious_point_count: int = 0

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[GeodeticPoint]:
        return iter(self.points)

    def coordinates(self) -> list[tuple[float, float]]:
        """Vertices as ``(lng, lat)`` pairs in recorded order."""

        return [(p.lng, p.lat) for p in self.points]


@dataclass(slots=True)
class FinishedActivity:
    """A recorded activity handed over once it met the recording thresholds."""

    id: ActivityID
    owner_id: UserID
    activity_type: ActivityType
    polylines: list[list[GeodeticPoint]]
    owner_username: str | None = None

    def primary_path(self) -> list[GeodeticPoint]:
        """The first recorded segment; pauses split later segments off."""

        return self.polylines[0] if self.polylines else []


# --- Geometry -------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class LatLng:
    lat: float
    lng: float


@dataclass(frozen=True, slots=True)
class BoundingBox:
    """Axis-aligned geodetic bounds."""

    min_lng: float
    min_lat: float
    max_lng: float
    max_lat: float

    def intersects(self, other: BoundingBox) -> bool:
        return not (
            other.min_lng > self.max_lng
            or other.max_lng < self.min_lng
            or other.min_lat > self.max_lat
            or other.max_lat < self.min_lat
        )

    @classmethod
    def from_coordinates(cls, coords: Iterable[tuple[float, float]]) -> BoundingBox:
        lngs: list[float] = []
        lats: list[float] = []
        for lng, lat in coords:
            lngs.append(lng)
            lats.append(lat)
        if not lngs:
            raise ValueError("cannot bound an empty coordinate sequence")
        return cls(min_lng=min(lngs), min_lat=min(lats), max_lng=max(lngs), max_lat=max(lats))


@dataclass(frozen=True, slots=True)
class TerritoryBounds:
    """The slice of a territory the spatial index needs."""

    territory_id: TerritoryID
    bbox: BoundingBox


@dataclass(frozen=True, slots=True)
class TerritoryShape:
    """Validated polygon with its derived metrics."""

    ring: Ring
    area: float
    perimeter: float
    center: LatLng
    holes: tuple[Ring, ...] = ()

    @property
    def bbox(self) -> BoundingBox:
        return BoundingBox.from_coordinates(self.ring)


# --- Territories ----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TerritoryClaimEvent:
    """Append-only record of a claim or ownership change."""

    claimed_by: UserID
    claimed_at: datetime
    activity_id: ActivityID
    previous_owner_id: UserID | None = None


@dataclass(slots=True)
class Territory:
    """An owned geographic claim."""

    id: TerritoryID
    owner_id: UserID
    activity_id: ActivityID
    claimed_at: datetime
    ring: Ring
    area: float
    perimeter: float
    center: LatLng
    name: str = ""
    holes: tuple[Ring, ...] = ()
    history: list[TerritoryClaimEvent] = field(default_factory=list)
    version: int = 0

    @property
    def bbox(self) -> BoundingBox:
        return BoundingBox.from_coordinates(self.ring)

    @property
    def bounds(self) -> TerritoryBounds:
        return TerritoryBounds(territory_id=self.id, bbox=self.bbox)


@dataclass(frozen=True, slots=True)
class TerritoryInvasion:
    """One rival territory reduced or destroyed by a conquest."""

    id: InvasionID
    invaded_user_id: UserID
    invader_user_id: UserID
    invaded_territory_id: TerritoryID
    new_territory_id: TerritoryID
    resulting_territory_id: TerritoryID | None
    overlap_area: float
    territory_was_destroyed: bool
    created_at: datetime
    invader_username: str | None = None
    seen: bool = False


# --- Conflict outcomes ----------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Destroyed:
    """The candidate is consumed and removed."""

    territory_id: TerritoryID
    overlap_area: float


@dataclass(frozen=True, slots=True)
class Clipped:
    """The candidate survives as its largest remainder."""

    territory_id: TerritoryID
    overlap_area: float
    remainder: TerritoryShape


@dataclass(frozen=True, slots=True)
class Untouched:
    """No meaningful overlap; nothing changes."""

    territory_id: TerritoryID


ConflictOutcome = Destroyed | Clipped | Untouched


# --- Results --------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ConquerResult:
    """Everything one conquest changed, as written to storage."""

    new_territory: Territory
    modified_territories: tuple[Territory, ...] = ()
    deleted_territory_ids: tuple[TerritoryID, ...] = ()
    invasions: tuple[TerritoryInvasion, ...] = ()
    total_conquered_area: float = 0.0
    absorbed_territory_ids: tuple[TerritoryID, ...] = ()

    def affected_owner_ids(self) -> Sequence[UserID]:
        """Owners who lost ground, in invasion order without repeats."""

        seen: dict[UserID, None] = {}
        for invasion in self.invasions:
            seen.setdefault(invasion.invaded_user_id, None)
        return list(seen)

"""Territory models for the conquest engine.

This module contains models for:
- Territories (owned polygons with their derived metrics and bounds)
- TerritoryClaimEvents (append-only ownership history of a territory)
"""

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampCreatedMixin


class TerritoryRow(Base, TimestampCreatedMixin):
    """Represents a claimed territory.

    Rings are stored as JSON lists of ``[lng, lat]`` pairs, closed, with the
    exterior wound counter-clockwise. The bounding box columns back the
    spatial index rebuild without decoding every ring.

    Attributes:
        id: Territory identifier (uuid string)
        owner_id: Current owner
        activity_id: Activity whose loop created the territory
        name: Display name (optional)
        claimed_at: Time of the original claim
        polygon: Exterior ring
        holes: Interior rings
        area: Area in square metres
        perimeter: Perimeter in metres
        center_lat: Latitude of the centroid
        center_lng: Longitude of the centroid
        min_lng, min_lat, max_lng, max_lat: Bounding box
        version: Optimistic concurrency counter
    """

    __tablename__ = "territories"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    owner_id: Mapped[str] = mapped_column(String(64), nullable=False)
    activity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False, default="")
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    polygon: Mapped[list[Any]] = mapped_column(JSON, nullable=False)
    holes: Mapped[list[Any]] = mapped_column(JSON, nullable=False, default=list)

    area: Mapped[float] = mapped_column(Float, nullable=False)
    perimeter: Mapped[float] = mapped_column(Float, nullable=False)
    center_lat: Mapped[float] = mapped_column(Float, nullable=False)
    center_lng: Mapped[float] = mapped_column(Float, nullable=False)

    min_lng: Mapped[float] = mapped_column(Float, nullable=False)
    min_lat: Mapped[float] = mapped_column(Float, nullable=False)
    max_lng: Mapped[float] = mapped_column(Float, nullable=False)
    max_lat: Mapped[float] = mapped_column(Float, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    history: Mapped[list["TerritoryClaimEventRow"]] = relationship(
        back_populates="territory",
        cascade="all, delete-orphan",
        order_by="TerritoryClaimEventRow.sequence",
    )

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("idx_territories_owner", "owner_id"),
        Index("idx_territories_claimed_at", "claimed_at"),
        Index("idx_territories_bbox", "min_lng", "min_lat", "max_lng", "max_lat"),
        CheckConstraint("area >= 0", name="check_territory_area_non_negative"),
        CheckConstraint("perimeter >= 0", name="check_territory_perimeter_non_negative"),
    )

    def __repr__(self) -> str:
        return f"<TerritoryRow(id={self.id}, owner={self.owner_id}, area={self.area:.1f})>"


class TerritoryClaimEventRow(Base):
    """One entry of a territory's ownership history.

    Attributes:
        id: Primary key
        territory_id: Territory the event belongs to
        sequence: Position in the history, starting at 0
        claimed_by: User who claimed (or clipped) the territory
        claimed_at: When the claim happened
        activity_id: Activity behind the claim
        previous_owner_id: Owner before the event, when it changed hands
    """

    __tablename__ = "territory_claim_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    territory_id: Mapped[str] = mapped_column(
        String(64), ForeignKey("territories.id", ondelete="CASCADE"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    claimed_by: Mapped[str] = mapped_column(String(64), nullable=False)
    claimed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    activity_id: Mapped[str] = mapped_column(String(64), nullable=False)
    previous_owner_id: Mapped[str | None] = mapped_column(String(64), nullable=True)

    territory: Mapped[TerritoryRow] = relationship(back_populates="history")

    __table_args__ = (
        Index("idx_claim_events_territory", "territory_id", "sequence"),
        Index("idx_claim_events_claimed_by", "claimed_by", "claimed_at"),
    )

    def __repr__(self) -> str:
        return f"<TerritoryClaimEventRow(territory={self.territory_id}, by={self.claimed_by})>"

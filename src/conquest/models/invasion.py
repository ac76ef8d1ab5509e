"""Invasion records.

An invasion row is written for every rival territory a conquest clipped or
destroyed. It outlives the invaded territory, so it keeps plain ids rather
than foreign keys.
"""

from sqlalchemy import Boolean, CheckConstraint, Float, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampCreatedMixin


class InvasionRow(Base, TimestampCreatedMixin):
    """Represents one territory invasion.

    Attributes:
        id: Invasion identifier (uuid string)
        invaded_user_id: Owner who lost ground
        invader_user_id: Owner of the conquering territory
        invader_username: Display name of the invader, if known
        invaded_territory_id: Territory that was clipped or destroyed
        new_territory_id: The conquering territory
        resulting_territory_id: Surviving territory, NULL when destroyed
        overlap_area: Area taken, in square metres
        territory_was_destroyed: Whether the invaded territory was removed
        seen: Whether the invaded user has acknowledged it
    """

    __tablename__ = "territory_invasions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    invaded_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    invader_user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    invader_username: Mapped[str | None] = mapped_column(String(100), nullable=True)
    invaded_territory_id: Mapped[str] = mapped_column(String(64), nullable=False)
    new_territory_id: Mapped[str] = mapped_column(String(64), nullable=False)
    resulting_territory_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    overlap_area: Mapped[float] = mapped_column(Float, nullable=False)
    territory_was_destroyed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    seen: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_invasions_invaded_unseen", "invaded_user_id", "seen"),
        Index("idx_invasions_new_territory", "new_territory_id"),
        CheckConstraint("overlap_area >= 0", name="check_invasion_overlap_non_negative"),
    )

    def __repr__(self) -> str:
        return (
            f"<InvasionRow(id={self.id}, invaded={self.invaded_user_id}, "
            f"destroyed={self.territory_was_destroyed})>"
        )

"""Key/value application settings and the store revision counter."""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class AppSetting(Base):
    """A runtime-adjustable setting such as ``event_mode``.

    Attributes:
        key: Setting name
        value: JSON payload
        updated_at: Last write time
    """

    __tablename__ = "app_settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

    def __repr__(self) -> str:
        return f"<AppSetting(key={self.key})>"


class StoreRevision(Base):
    """Monotonic counter bumped by every committed conquest.

    Writers compare-and-swap on ``value`` so a result computed from an older
    snapshot cannot be committed.
    """

    __tablename__ = "store_revisions"

    TERRITORIES = "territories"

    name: Mapped[str] = mapped_column(String(50), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<StoreRevision(name={self.name}, value={self.value})>"

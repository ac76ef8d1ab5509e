"""Base model class and common mixins for SQLAlchemy models.

This module provides the declarative base for all models and the helpers
shared by the territory schema.
"""

from datetime import UTC, datetime
from typing import ClassVar

from sqlalchemy import DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models.

    Provides type_annotation_map for automatic type inference from Python types.
    """

    type_annotation_map: ClassVar[dict] = {
        datetime: DateTime(timezone=True),
    }


class TimestampCreatedMixin:
    """Mixin for append-only records that only need a created_at timestamp."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes read back from backends without timezone support.

    SQLite returns naive values even for ``DateTime(timezone=True)`` columns.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)

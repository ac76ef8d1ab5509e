"""SQLAlchemy models for the conquest engine.

This module exports all database models and the declarative base.
"""

from .base import Base, TimestampCreatedMixin, as_utc
from .invasion import InvasionRow
from .setting import AppSetting, StoreRevision
from .territory import TerritoryClaimEventRow, TerritoryRow

__all__ = [
    "AppSetting",
    "Base",
    "InvasionRow",
    "StoreRevision",
    "TerritoryClaimEventRow",
    "TerritoryRow",
    "TimestampCreatedMixin",
    "as_utc",
]

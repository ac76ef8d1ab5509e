"""Storage adapters for the conquest engine."""

from conquest.repository.settings_store import SqlSettingsStore
from conquest.repository.sql_store import SqlTerritoryStore

__all__ = ["SqlSettingsStore", "SqlTerritoryStore"]

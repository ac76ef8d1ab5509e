"""Services wiring the conquest domain to storage."""

from conquest.services.conquest_service import ConquestService
from conquest.services.event_mode_service import EventModeService, EventModeSetting
from conquest.services.territory_service import LeaderboardEntry, TerritoryService

__all__ = [
    "ConquestService",
    "EventModeService",
    "EventModeSetting",
    "LeaderboardEntry",
    "TerritoryService",
]

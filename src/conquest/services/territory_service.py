"""Territory read-side service: listings, leaderboard and invasion inbox."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import datetime

from conquest.domain.models import InvasionID, Territory, TerritoryID, TerritoryInvasion, UserID
from conquest.interfaces.store import ITerritoryStore

logger = logging.getLogger(__name__)

DEFAULT_LEADERBOARD_LIMIT = 50


@dataclass(frozen=True, slots=True)
class LeaderboardEntry:
    rank: int
    owner_id: UserID
    total_area: float
    territory_count: int


class TerritoryService:
    """Queries over committed territories and invasions."""

    def __init__(self, store: ITerritoryStore):
        self.store = store

    def list_territories(self, owner_id: UserID | None = None) -> list[Territory]:
        return self.store.list_territories(owner_id)

    def get_territory(self, territory_id: TerritoryID) -> Territory:
        return self.store.get_territory(territory_id)

    def total_area(self, owner_id: UserID) -> float:
        return self.store.total_area(owner_id)

    def leaderboard(
        self, limit: int = DEFAULT_LEADERBOARD_LIMIT, since: datetime | None = None
    ) -> list[LeaderboardEntry]:
        """Owners ranked by total conquered area.

        Args:
            limit: Maximum entries returned
            since: Only count territories claimed from this time on

        Returns:
            Entries ranked from 1
        """
        rows = self.store.leaderboard(limit=limit, since=since)
        return [
            LeaderboardEntry(rank=rank, owner_id=owner, total_area=area, territory_count=count)
            for rank, (owner, area, count) in enumerate(rows, start=1)
        ]

    def unseen_invasions(self, user_id: UserID) -> list[TerritoryInvasion]:
        return self.store.list_unseen_invasions(user_id)

    def mark_invasions_seen(
        self, user_id: UserID, invasion_ids: Sequence[InvasionID] | None = None
    ) -> int:
        changed = self.store.mark_invasions_seen(user_id, invasion_ids)
        logger.debug("Marked %d invasions seen for %s", changed, user_id)
        return changed

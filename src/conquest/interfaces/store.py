"""Territory Store Protocol Interface.

This module defines the storage contract the conquest coordinator writes
through, plus the read-side queries the HTTP layer exposes.
"""

from collections.abc import Sequence
from datetime import datetime
from typing import Protocol

from conquest.domain.models import (
    ConquerResult,
    InvasionID,
    Territory,
    TerritoryBounds,
    TerritoryID,
    TerritoryInvasion,
    UserID,
)


class ITerritoryStore(Protocol):
    """Protocol defining territory persistence.

    Writes are all-or-nothing and guarded by a store-wide revision counter:
    ``apply_conquest`` raises ``StaleStateError`` when the store moved on
    since ``expected_revision`` was read.
    """

    def current_revision(self) -> int:
        """Revision counter, bumped by every committed conquest."""
        ...

    def all_bounds(self) -> list[TerritoryBounds]:
        """Bounding boxes of every stored territory."""
        ...

    def load_territories(self, territory_ids: Sequence[TerritoryID]) -> list[Territory]:
        """Load full territories; unknown ids are omitted."""
        ...

    def latest_claim_at(self, owner_id: UserID) -> datetime | None:
        """Time of the owner's most recent claim, if any."""
        ...

    def apply_conquest(self, result: ConquerResult, expected_revision: int) -> int:
        """Persist a conquest atomically.

        Args:
            result: Everything the conquest changed
            expected_revision: Revision the result was computed against

        Returns:
            The new store revision

        Raises:
            StaleStateError: Revision or a territory version moved on
            ValidationError: The result breaks a store-side guard
            PersistenceError: The commit failed
        """
        ...

    def list_territories(self, owner_id: UserID | None = None) -> list[Territory]: ...

    def get_territory(self, territory_id: TerritoryID) -> Territory: ...

    def total_area(self, owner_id: UserID) -> float: ...

    def leaderboard(
        self, limit: int = 50, since: datetime | None = None
    ) -> list[tuple[UserID, float, int]]:
        """Owners ranked by total area as ``(owner_id, area, territory_count)``."""
        ...

    def list_unseen_invasions(self, user_id: UserID) -> list[TerritoryInvasion]: ...

    def mark_invasions_seen(
        self, user_id: UserID, invasion_ids: Sequence[InvasionID] | None = None
    ) -> int:
        """Flag invasions as seen; all of the user's unseen ones when ids is None."""
        ...

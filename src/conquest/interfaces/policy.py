"""Policy Provider Protocol Interface.

This module defines the protocol consulted before conflict resolution runs.
"""

from typing import Protocol


class IPolicyProvider(Protocol):
    """Protocol for anything that can switch conflict resolution off."""

    def is_conflict_resolution_active(self) -> bool:
        """Whether conquests currently clip and destroy rival territories.

        Returns:
            False while an event lets territories overlap
        """
        ...

"""Event mode switch for conflict resolution.

During an event, territories may overlap freely: new claims are stored
without clipping or destroying anyone else's ground.
"""

from __future__ import annotations

import logging

from conquest.interfaces.policy import IPolicyProvider

logger = logging.getLogger(__name__)


class EventModeGate:
    """Answers whether a conquest should resolve conflicts right now."""

    def __init__(self, policy: IPolicyProvider) -> None:
        self.policy = policy

    def is_conflict_resolution_active(self) -> bool:
        active = self.policy.is_conflict_resolution_active()
        if not active:
            logger.debug("Event mode active, conflict resolution disabled")
        return active


class StaticPolicy:
    """Fixed policy, for tooling and tests that need no storage."""

    def __init__(self, active: bool = True) -> None:
        self.active = active

    def is_conflict_resolution_active(self) -> bool:
        return self.active

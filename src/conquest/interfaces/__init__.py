"""Protocol-based interfaces for the conquest engine.

This module exports the protocols the conquest coordinator depends on, so
storage, policy and activity sources can be swapped for fakes in tests.
"""

from conquest.interfaces.activity import IActivityProvider
from conquest.interfaces.policy import IPolicyProvider
from conquest.interfaces.settings import ISettingsStore
from conquest.interfaces.store import ITerritoryStore

__all__ = [
    "IActivityProvider",
    "IPolicyProvider",
    "ISettingsStore",
    "ITerritoryStore",
]

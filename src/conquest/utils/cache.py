"""Explicit time-bounded cache objects.

Caches are passed into the services that use them instead of living in module
globals, so tests can build a fresh one per case and drive time by hand.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from typing import Generic, TypeVar

T = TypeVar("T")


class TTLCache(Generic[T]):
    """Single-value cache that expires ``ttl_seconds`` after it was last set.

    Example:
        >>> now = [0.0]
        >>> cache = TTLCache(30.0, clock=lambda: now[0])
        >>> cache.set(True)
        >>> cache.get()
        True
        >>> now[0] = 31.0
        >>> cache.get() is None
        True
        >>> cache.last_value
        True
    """

    def __init__(self, ttl_seconds: float, *, clock: Callable[[], float] = time.monotonic) -> None:
        if ttl_seconds < 0:
            raise ValueError(f"ttl_seconds must be non-negative, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._value: T | None = None
        self._stored_at: float | None = None

    def get(self) -> T | None:
        """Return the cached value while it is fresh, otherwise ``None``."""

        if self._stored_at is None:
            return None
        if self._clock() - self._stored_at >= self.ttl_seconds:
            return None
        return self._value

    def set(self, value: T) -> None:
        self._value = value
        self._stored_at = self._clock()

    def invalidate(self) -> None:
        """Force the next ``get`` to miss while keeping ``last_value`` as a fallback."""

        self._stored_at = None

    def clear(self) -> None:
        self._value = None
        self._stored_at = None

    @property
    def last_value(self) -> T | None:
        """Most recently stored value, fresh or not."""

        return self._value

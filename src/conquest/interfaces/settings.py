"""Settings Store Protocol Interface.

This module defines the key/value store runtime switches such as event mode
are read from.
"""

from typing import Any, Protocol


class ISettingsStore(Protocol):
    """Protocol for JSON application settings."""

    def get_setting(self, key: str) -> dict[str, Any] | None:
        """Read a setting.

        Raises:
            PersistenceError: The store could not be read
        """
        ...

    def put_setting(self, key: str, value: dict[str, Any]) -> None: ...

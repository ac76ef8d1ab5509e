"""Failures of a single conquest attempt.

None of these are fatal to the process: every one describes why one claim did
not go through and leaves the store exactly as it was.
"""

from __future__ import annotations

from .enums import PathRejection


class ConquestError(RuntimeError):
    """Base class for every error the engine raises."""


class ValidationError(ConquestError):
    """The claim was rejected before any persistence happened."""


class PathValidationError(ValidationError):
    """The recorded path cannot become a territory."""

    def __init__(self, reason: PathRejection, detail: str | None = None) -> None:
        self.reason = reason
        self.detail = detail
        message = reason.value if detail is None else f"{reason.value}: {detail}"
        super().__init__(message)


class RateLimitError(ValidationError):
    """The owner claimed another territory too recently."""

    def __init__(self, owner_id: str, retry_after_s: float) -> None:
        self.owner_id = owner_id
        self.retry_after_s = retry_after_s
        super().__init__(f"owner {owner_id} must wait {retry_after_s:.0f}s before claiming again")


class GeometryError(ConquestError):
    """A stored polygon is malformed and cannot take part in clipping."""


class StaleStateError(ConquestError):
    """The store changed after the resolution basis was read."""


class ConflictError(ConquestError):
    """Concurrent writers kept invalidating the resolution after every retry."""


class PersistenceError(ConquestError):
    """The store failed to commit; nothing was written."""


class TerritoryNotFoundError(ConquestError):
    """A requested territory does not exist."""

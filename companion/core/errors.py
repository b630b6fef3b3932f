"""Companion Engine — error taxonomy.

Only ``InvalidArgument`` ever reaches a caller. Persistence failures are
raised inside the storage layer and caught at its public boundary.
"""

from __future__ import annotations


class CompanionError(Exception):
    """Base class for every error raised by the engine."""


class InvalidArgument(CompanionError, ValueError):
    """Raised when a mutating operation receives genuinely invalid input."""


class PersistenceError(CompanionError):
    """Raised when a store's backing file cannot be read or written."""

    def __init__(self, path: str, reason: str) -> None:
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class PersistenceReadFailure(PersistenceError):
    """Backing file is unreadable or does not hold valid records."""


class PersistenceWriteFailure(PersistenceError):
    """Backing file could not be written."""

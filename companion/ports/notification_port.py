"""Notification port — abstract interface for publishing timeline entries.

Stores depend on this protocol, never on the concrete timeline.
"""

from __future__ import annotations

from typing import Protocol


class NotificationPort(Protocol):
    """Abstract notification interface used by the stores."""

    def publish(self, text: str, source: str) -> None: ...

    def has_entries(self) -> bool: ...

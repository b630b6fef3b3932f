"""
Companion Engine — Data Models.

Every store persists its records as JSON in its own file. The records are
plain dataclasses; serialization goes through pydantic TypeAdapters in
``companion.data.storage``.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Annotated

from pydantic import AfterValidator


def _new_id() -> str:
    return uuid.uuid4().hex


def to_local_naive(value: datetime) -> datetime:
    """Convert an aware datetime to naive local time. Naive values pass through."""
    if value.tzinfo is None or value.utcoffset() is None:
        return value
    return value.astimezone().replace(tzinfo=None)


# Stores compare against the naive local clock, so persisted offsets are
# folded into local time on load.
LocalDateTime = Annotated[datetime, AfterValidator(to_local_naive)]


class RecurrencePattern(Enum):
    NONE = "None"
    DAILY = "Daily"
    WEEKLY = "Weekly"
    UNKNOWN = "Unknown"

    @classmethod
    def parse(cls, value: RecurrencePattern | str | None) -> RecurrencePattern:
        """Map a persisted or user-supplied value to a pattern.

        Matching is case-insensitive. Empty values mean NONE; anything
        unrecognized maps to UNKNOWN.
        """
        if isinstance(value, cls):
            return value
        if value is None or not str(value).strip():
            return cls.NONE
        wanted = str(value).strip().lower()
        for pattern in cls:
            if pattern.value.lower() == wanted:
                return pattern
        return cls.UNKNOWN


@dataclass
class Reminder:
    """A one-shot or recurring reminder.

    ``recurrence_pattern`` keeps the raw string so a value this version
    does not understand survives a load/save cycle untouched.
    """

    title: str
    message: str
    due_time: LocalDateTime
    is_completed: bool = False
    is_recurring: bool = False
    recurrence_pattern: str = RecurrencePattern.NONE.value
    id: str = field(default_factory=_new_id)

    @property
    def pattern(self) -> RecurrencePattern:
        return RecurrencePattern.parse(self.recurrence_pattern)


@dataclass
class Achievement:
    """A catalog achievement plus its unlock state."""

    id: str                                # catalog slug, e.g. "first_chat"
    title: str
    description: str
    icon: str
    is_unlocked: bool = False
    unlocked_date: LocalDateTime | None = None


@dataclass
class MoodEntry:
    mood: str                              # canonical mood name, e.g. "Happy"
    note: str = ""
    timestamp: LocalDateTime = field(default_factory=datetime.now)


@dataclass
class ChatMessage:
    """One entry of the chat timeline."""

    content: str
    is_from_companion: bool = True
    timestamp: LocalDateTime = field(default_factory=datetime.now)
    source: str = "chat"


@dataclass
class AppState:
    """Aggregate handed to shutdown persistence and restored on startup."""

    chat_history: list[ChatMessage] = field(default_factory=list)
    notifier_rate_per_hour: int = 5
    context_window_length: int = 10

"""Achievement rules — when each catalog achievement unlocks.

The predicates are pure functions over snapshots of the timeline and the
stores. ``AchievementRules`` evaluates them and skips any achievement that
is already unlocked, so a satisfied condition is not re-checked on every
message.
"""

from __future__ import annotations

import logging
from datetime import date, timedelta
from typing import TYPE_CHECKING, Iterable

from companion.data.models import ChatMessage

if TYPE_CHECKING:
    from companion.core.achievements import AchievementRegistry
    from companion.core.mood import MoodLog
    from companion.core.reminders import ReminderStore

logger = logging.getLogger(__name__)

DEEP_CONVERSATION_MESSAGES = 10
STREAK_DAYS = 3
MOOD_DAYS = 3
REMINDERS_COMPLETED = 3


def asks_for_bedtime_story(text: str) -> bool:
    lowered = text.lower()
    return "bedtime story" in lowered or ("story" in lowered and "bed" in lowered)


def longest_day_streak(days: Iterable[date]) -> int:
    """Length of the longest run of consecutive calendar days."""
    ordered = sorted(set(days))
    best = run = 0
    previous: date | None = None
    for day in ordered:
        run = run + 1 if previous is not None and day - previous == timedelta(days=1) else 1
        best = max(best, run)
        previous = day
    return best


def user_message_days(messages: Iterable[ChatMessage]) -> set[date]:
    return {m.timestamp.date() for m in messages if not m.is_from_companion}


class AchievementRules:
    """Evaluates unlock conditions against the live stores."""

    def __init__(
        self,
        registry: AchievementRegistry,
        reminders: ReminderStore | None = None,
        mood_log: MoodLog | None = None,
    ) -> None:
        self._registry = registry
        self._reminders = reminders
        self._mood_log = mood_log

    def _unlock_if(self, achievement_id: str, condition) -> bool:
        if self._registry.is_unlocked(achievement_id):
            return False
        if not condition():
            return False
        return self._registry.unlock(achievement_id)

    def evaluate_message(self, text: str, messages: list[ChatMessage]) -> list[str]:
        """Check the chat-driven achievements after a user message.

        ``messages`` is the timeline including the new message.
        """
        unlocked: list[str] = []
        checks = (
            ("first_chat", lambda: any(not m.is_from_companion for m in messages)),
            ("bedtime_story", lambda: asks_for_bedtime_story(text)),
            ("deep_conversation", lambda: len(messages) > DEEP_CONVERSATION_MESSAGES),
            (
                "consistent_chatter",
                lambda: longest_day_streak(user_message_days(messages)) >= STREAK_DAYS,
            ),
        )
        for achievement_id, condition in checks:
            if self._unlock_if(achievement_id, condition):
                unlocked.append(achievement_id)
        return unlocked

    def evaluate_mood(self) -> bool:
        if self._mood_log is None:
            return False
        return self._unlock_if(
            "mood_tracker", lambda: len(self._mood_log.distinct_days()) >= MOOD_DAYS,
        )

    def evaluate_reminders(self) -> bool:
        if self._reminders is None:
            return False
        return self._unlock_if(
            "reminder_keeper", lambda: self._reminders.completed_count() >= REMINDERS_COMPLETED,
        )

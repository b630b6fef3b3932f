"""
Companion Engine — Composition root.

Wires the timeline, the scheduler, the three stores, the achievement rules
and the ambient notifier together. This is the only surface the view layer
and the chat client talk to: they read snapshots, subscribe to timeline
notifications and call the mutating operations below.
"""

from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from companion.core.achievement_rules import AchievementRules
from companion.core.achievements import AchievementRegistry
from companion.core.mood import MoodLog
from companion.core.periodic_notifier import AMBIENT_MESSAGES, PeriodicNotifier
from companion.core.reminders import DEFAULT_CHECK_SECONDS, ReminderStore
from companion.core.scheduler import EngineScheduler
from companion.core.timeline import Listener, NotificationSink
from companion.data.models import AppState, ChatMessage, RecurrencePattern

if TYPE_CHECKING:
    from companion.data.models import Achievement, MoodEntry, Reminder

logger = logging.getLogger(__name__)


class CompanionEngine:
    """Background scheduling and notification engine."""

    def __init__(
        self,
        data_dir: str | Path,
        state: AppState | None = None,
        reminder_check_seconds: float = DEFAULT_CHECK_SECONDS,
        retention_days: int = 7,
        clock: Callable[[], datetime] = datetime.now,
        scheduler: EngineScheduler | None = None,
    ) -> None:
        state = state or AppState()
        self._data_dir = Path(data_dir)
        self._clock = clock
        self._reminder_check_seconds = reminder_check_seconds
        self._context_window_length = max(1, state.context_window_length)

        self.sink = NotificationSink(state.chat_history, clock=clock)
        self.scheduler = scheduler or EngineScheduler()

        self.reminders = ReminderStore(
            self._data_dir, self.sink, clock=clock, retention_days=retention_days,
        )
        self.achievements_registry = AchievementRegistry(self._data_dir, self.sink, clock=clock)
        self.mood_log = MoodLog(self._data_dir, self.sink, clock=clock)
        self.rules = AchievementRules(
            self.achievements_registry, reminders=self.reminders, mood_log=self.mood_log,
        )
        self.ambient = PeriodicNotifier(
            self.scheduler,
            self.sink,
            messages=AMBIENT_MESSAGES,
            messages_per_hour=state.notifier_rate_per_hour,
        )
        self.reminders.on_change(lambda _active: self.rules.evaluate_reminders())
        self._started = False

    # -- lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Start the timeline consumer and every timer. Call on the event loop."""
        if self._started:
            return
        self.sink.start()
        self.reminders.start(self.scheduler, self._reminder_check_seconds)
        self.ambient.start()
        self.scheduler.start()
        self._started = True
        logger.info("Companion engine started (data dir %s)", self._data_dir)

    async def stop(self) -> None:
        """Stop every timer, then flush the timeline."""
        if not self._started:
            return
        self.ambient.stop()
        self.reminders.close()
        self.scheduler.shutdown()
        await self.sink.stop()
        self._started = False
        logger.info("Companion engine stopped")

    # -- read side ---------------------------------------------------------

    def active_reminders(self) -> list[Reminder]:
        return self.reminders.active_reminders()

    def achievements(self) -> list[Achievement]:
        return self.achievements_registry.achievements()

    @property
    def current_mood(self) -> str:
        return self.mood_log.current_mood

    def recent_moods(self, n: int = 5) -> list[MoodEntry]:
        return self.mood_log.recent_entries(n)

    def messages(self) -> list[ChatMessage]:
        return self.sink.messages()

    def context_window(self) -> list[ChatMessage]:
        """The most recent messages the chat client sends as context."""
        return self.sink.messages()[-self._context_window_length:]

    def subscribe(self, on_notification: Listener) -> None:
        self.sink.subscribe(on_notification)

    def unsubscribe(self, on_notification: Listener) -> None:
        self.sink.unsubscribe(on_notification)

    # -- write side --------------------------------------------------------

    def record_user_message(self, text: str) -> list[str]:
        """Append a user message and evaluate the chat achievements.

        Returns the ids of achievements unlocked by this message.
        """
        message = ChatMessage(content=text, is_from_companion=False, timestamp=self._clock(), source="user")
        self.sink.accept(message)
        # Rules see everything accepted so far, delivered or not.
        return self.rules.evaluate_message(text, self.sink.accepted_messages())

    def record_companion_message(self, text: str) -> None:
        """Append a reply produced by the chat client."""
        self.sink.publish(text, "chat")

    def add_reminder(
        self,
        title: str,
        message: str,
        due_time: datetime,
        is_recurring: bool = False,
        pattern: RecurrencePattern | str = RecurrencePattern.NONE,
    ) -> str:
        return self.reminders.add(title, message, due_time, is_recurring, pattern)

    def record_mood(self, mood: str, note: str = "") -> MoodEntry:
        entry = self.mood_log.add_entry(mood, note)
        self.rules.evaluate_mood()
        return entry

    def set_notifier_rate(self, messages_per_hour: int) -> int:
        return self.ambient.set_rate(messages_per_hour)

    def app_state(self) -> AppState:
        """Snapshot of the aggregate for shutdown persistence."""
        return AppState(
            chat_history=self.sink.messages(),
            notifier_rate_per_hour=self.ambient.messages_per_hour,
            context_window_length=self._context_window_length,
        )

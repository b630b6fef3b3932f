"""
Companion Engine — Reminder store.

Reminders persist in ``reminders.json``. Each reminder is either
Scheduled or Completed:

- a non-recurring reminder completes the first time a tick finds it due;
- a recurring Daily/Weekly reminder stays Scheduled and its due time moves
  forward by one day/week;
- a recurring reminder with no usable pattern falls back to completing.

A periodic tick collects every due reminder against a single ``now`` and
processes the batch earliest-due first, publishing exactly one timeline
notification per reminder.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from companion.core.errors import InvalidArgument
from companion.data.models import RecurrencePattern, Reminder, to_local_naive
from companion.data.storage import load_records, save_records

if TYPE_CHECKING:
    from companion.core.scheduler import EngineScheduler
    from companion.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

REMINDERS_FILE = "reminders.json"
SOURCE = "reminders"
JOB_ID = "reminders.check_due"
DEFAULT_CHECK_SECONDS = 30

_ADVANCE = {
    RecurrencePattern.DAILY: timedelta(days=1),
    RecurrencePattern.WEEKLY: timedelta(days=7),
}


def format_due_message(reminder: Reminder) -> str:
    if reminder.message:
        return f"Reminder: {reminder.title} - {reminder.message}"
    return f"Reminder: {reminder.title}"


class ReminderStore:
    """File-backed reminders with a due-check scheduler."""

    def __init__(
        self,
        data_dir: str | Path,
        notifier: NotificationPort,
        clock: Callable[[], datetime] = datetime.now,
        retention_days: int = 7,
    ) -> None:
        self._path = Path(data_dir) / REMINDERS_FILE
        self._notifier = notifier
        self._clock = clock
        self._lock = threading.RLock()
        self._scheduler: EngineScheduler | None = None
        self._closed = False
        self._listeners: list[Callable[[list[Reminder]], None]] = []
        self._reminders: list[Reminder] = self._load(retention_days)

    def _load(self, retention_days: int) -> list[Reminder]:
        reminders = load_records(self._path, Reminder)
        cutoff = self._clock() - timedelta(days=retention_days)
        kept = [
            r for r in reminders
            if not (r.is_completed and not r.is_recurring and r.due_time < cutoff)
        ]
        if len(kept) != len(reminders):
            logger.info("Pruned %d old completed reminders", len(reminders) - len(kept))
        logger.info("Loaded %d reminders from %s", len(kept), self._path)
        return kept

    def _save(self) -> None:
        save_records(self._path, self._reminders, Reminder)

    def _find(self, reminder_id: str) -> Reminder | None:
        for reminder in self._reminders:
            if reminder.id == reminder_id:
                return reminder
        return None

    def _changed(self) -> None:
        active = self._active()
        for listener in list(self._listeners):
            try:
                listener(active)
            except Exception as exc:
                logger.error("Reminder listener failed: %s", exc)

    # -- queries -----------------------------------------------------------

    def _active(self) -> list[Reminder]:
        active = [replace(r) for r in self._reminders if not r.is_completed]
        active.sort(key=lambda r: r.due_time)
        return active

    def active_reminders(self) -> list[Reminder]:
        """Scheduled reminders, earliest due first."""
        with self._lock:
            return self._active()

    def reminders(self) -> list[Reminder]:
        with self._lock:
            return [replace(r) for r in self._reminders]

    def get(self, reminder_id: str) -> Reminder | None:
        with self._lock:
            reminder = self._find(reminder_id)
            return replace(reminder) if reminder else None

    def completed_count(self) -> int:
        with self._lock:
            return sum(1 for r in self._reminders if r.is_completed)

    def on_change(self, listener: Callable[[list[Reminder]], None]) -> None:
        """Register a callback receiving the new active list after each mutation."""
        self._listeners.append(listener)

    # -- mutations ---------------------------------------------------------

    def add(
        self,
        title: str,
        message: str,
        due_time: datetime,
        is_recurring: bool = False,
        pattern: RecurrencePattern | str = RecurrencePattern.NONE,
    ) -> str:
        """Create a Scheduled reminder and return its id.

        Raises:
            InvalidArgument: ``title`` is empty or whitespace.
        """
        if not title or not title.strip():
            raise InvalidArgument("Reminder title cannot be empty")

        if isinstance(pattern, RecurrencePattern):
            raw_pattern = pattern.value
        else:
            raw_pattern = str(pattern or RecurrencePattern.NONE.value)

        reminder = Reminder(
            title=title.strip(),
            message=message or "",
            due_time=to_local_naive(due_time),
            is_recurring=is_recurring,
            recurrence_pattern=raw_pattern,
        )
        with self._lock:
            self._reminders.append(reminder)
            self._save()
            self._changed()
        logger.info(
            "Reminder added: %s '%s' due %s%s",
            reminder.id, reminder.title, reminder.due_time.isoformat(),
            f" ({raw_pattern})" if is_recurring else "",
        )
        return reminder.id

    def complete(self, reminder_id: str) -> bool:
        """Mark a reminder Completed. Recurring series are dismissed too.

        Unknown or already completed ids are a no-op returning False.
        """
        with self._lock:
            reminder = self._find(reminder_id)
            if reminder is None or reminder.is_completed:
                return False
            reminder.is_completed = True
            self._save()
            self._changed()
        logger.info("Reminder %s '%s' completed", reminder.id, reminder.title)
        return True

    def delete(self, reminder_id: str) -> bool:
        """Remove a reminder permanently. Unknown ids are a no-op."""
        with self._lock:
            before = len(self._reminders)
            self._reminders = [r for r in self._reminders if r.id != reminder_id]
            if len(self._reminders) == before:
                return False
            self._save()
            self._changed()
        logger.info("Reminder %s deleted", reminder_id)
        return True

    # -- scheduling --------------------------------------------------------

    def _advance(self, reminder: Reminder) -> None:
        """Apply the due transition to one reminder in place."""
        if not reminder.is_recurring:
            reminder.is_completed = True
            return
        step = _ADVANCE.get(reminder.pattern)
        if step is None:
            logger.warning(
                "Reminder %s has unusable recurrence pattern %r, completing it",
                reminder.id, reminder.recurrence_pattern,
            )
            reminder.is_completed = True
            return
        reminder.due_time = reminder.due_time + step

    def check_due(self, now: datetime | None = None) -> list[Reminder]:
        """Fire every reminder due at ``now``.

        ``now`` is read once for the whole batch, so a reminder whose due
        time is advanced past it is not fired twice in the same tick.
        Returns copies of the fired reminders as they were when due.
        """
        if self._closed:
            return []
        if now is None:
            now = self._clock()

        fired: list[Reminder] = []
        with self._lock:
            due = [r for r in self._reminders if not r.is_completed and r.due_time <= now]
            due.sort(key=lambda r: r.due_time)
            for reminder in due:
                snapshot = replace(reminder)
                self._advance(reminder)
                self._save()
                self._notifier.publish(format_due_message(snapshot), SOURCE)
                fired.append(snapshot)
                logger.info(
                    "Reminder %s '%s' fired; %s",
                    reminder.id, reminder.title,
                    "completed" if reminder.is_completed
                    else f"next due {reminder.due_time.isoformat()}",
                )
            if fired:
                self._changed()
        return fired

    async def _on_tick(self) -> None:
        self.check_due()

    def start(
        self,
        scheduler: EngineScheduler,
        interval_seconds: float = DEFAULT_CHECK_SECONDS,
    ) -> None:
        """Register the due-check timer on ``scheduler``."""
        if self._closed:
            raise RuntimeError("ReminderStore is closed")
        self._scheduler = scheduler
        scheduler.set_interval_job(JOB_ID, self._on_tick, interval_seconds)

    def close(self) -> None:
        """Stop the timer, then release the store. No tick runs afterwards."""
        if self._scheduler is not None:
            self._scheduler.remove_job(JOB_ID)
            self._scheduler = None
        self._closed = True

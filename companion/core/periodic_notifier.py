"""
Companion Engine — Periodic notifier.

Injects a random message from a pool into the timeline at a configurable
rate (messages per hour). Used for the ambient companion messages that
appear once a conversation has started.
"""

from __future__ import annotations

import logging
import random
import threading
from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from companion.core.scheduler import EngineScheduler
    from companion.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

MIN_MESSAGES_PER_HOUR = 1
MAX_MESSAGES_PER_HOUR = 30

AMBIENT_MESSAGES: tuple[str, ...] = (
    "Did you remember to drink some water today?",
    "Just checking in. I'm right here if you want to talk.",
    "You're doing great, I'm proud of you.",
    "Is there anything I can help you with right now?",
    "Don't forget to stretch a little!",
    "Feeling a bit shy today? That's okay.",
    "Remember to take a short break, you deserve it.",
)


def clamp_rate(messages_per_hour: int) -> int:
    """0 or less disables; anything else is clamped into the valid range."""
    if messages_per_hour <= 0:
        return 0
    return max(MIN_MESSAGES_PER_HOUR, min(MAX_MESSAGES_PER_HOUR, int(messages_per_hour)))


class PeriodicNotifier:
    """Random-message injector with runtime-adjustable rate."""

    def __init__(
        self,
        scheduler: EngineScheduler,
        notifier: NotificationPort,
        messages: Sequence[str] = AMBIENT_MESSAGES,
        messages_per_hour: int = 5,
        name: str = "ambient",
        rng: random.Random | None = None,
    ) -> None:
        self._scheduler = scheduler
        self._notifier = notifier
        self._messages = [m for m in messages if m]
        self._rate = clamp_rate(messages_per_hour)
        self._name = name
        self._job_id = f"notifier.{name}"
        self._rng = rng or random.Random()
        self._lock = threading.Lock()
        self._started = False

    @property
    def messages_per_hour(self) -> int:
        return self._rate

    @property
    def interval_seconds(self) -> float | None:
        if not self._enabled():
            return None
        return 3600 / self._rate

    @property
    def is_running(self) -> bool:
        return self._scheduler.has_job(self._job_id)

    @property
    def job_id(self) -> str:
        return self._job_id

    def _enabled(self) -> bool:
        return self._rate > 0 and bool(self._messages)

    def _reschedule(self) -> None:
        # Caller holds self._lock.
        if self._started and self._enabled():
            self._scheduler.set_interval_job(self._job_id, self._on_tick, 3600 / self._rate)
            logger.info(
                "Notifier %s: %d/hour (every %.0fs)", self._name, self._rate, 3600 / self._rate,
            )
        else:
            if self._scheduler.remove_job(self._job_id):
                logger.info("Notifier %s disabled", self._name)

    def start(self) -> None:
        with self._lock:
            self._started = True
            self._reschedule()

    def stop(self) -> None:
        with self._lock:
            self._started = False
            self._scheduler.remove_job(self._job_id)

    def set_rate(self, messages_per_hour: int) -> int:
        """Change the rate, replacing the running timer. Returns the applied rate."""
        with self._lock:
            self._rate = clamp_rate(messages_per_hour)
            self._reschedule()
            return self._rate

    def set_messages(self, messages: Sequence[str]) -> None:
        with self._lock:
            self._messages = [m for m in messages if m]
            self._reschedule()

    def tick(self) -> str | None:
        """Publish one random message if a conversation has started."""
        with self._lock:
            if not self._messages or not self._notifier.has_entries():
                return None
            message = self._rng.choice(self._messages)
        self._notifier.publish(message, self._name)
        return message

    async def _on_tick(self) -> None:
        self.tick()

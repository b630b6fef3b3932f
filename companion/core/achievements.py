"""
Companion Engine — Achievement registry.

The catalog is fixed, process-wide data. The persisted file only carries
unlock state: on load it is reconciled onto the current catalog by id, so
achievements added in a later version start locked, progress on existing
ones is kept, and ids no longer in the catalog are dropped.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from companion.data.models import Achievement
from companion.data.storage import load_records, save_records

if TYPE_CHECKING:
    from companion.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

ACHIEVEMENTS_FILE = "achievements.json"
SOURCE = "achievements"

ACHIEVEMENT_CATALOG: tuple[Achievement, ...] = (
    Achievement(
        id="first_chat",
        title="First Chat",
        description="Had your first conversation",
        icon="💬",
    ),
    Achievement(
        id="consistent_chatter",
        title="Consistent Chatter",
        description="Chat three days in a row",
        icon="📅",
    ),
    Achievement(
        id="bedtime_story",
        title="Bedtime Story",
        description="Ask for a bedtime story",
        icon="📚",
    ),
    Achievement(
        id="reminder_keeper",
        title="Reminder Keeper",
        description="Complete 3 reminders on time",
        icon="⭐",
    ),
    Achievement(
        id="mood_tracker",
        title="Mood Tracker",
        description="Record your mood on 3 different days",
        icon="📊",
    ),
    Achievement(
        id="deep_conversation",
        title="Deep Conversation",
        description="Have a long, meaningful conversation",
        icon="❤️",
    ),
)


def reconcile(
    catalog: tuple[Achievement, ...] | list[Achievement],
    persisted: list[Achievement],
) -> list[Achievement]:
    """Merge persisted unlock state onto the catalog by id.

    The result has exactly the catalog's entries, in catalog order, with
    the catalog's titles, descriptions and icons. No I/O.
    """
    saved = {a.id: a for a in persisted}
    merged: list[Achievement] = []
    for entry in catalog:
        state = saved.get(entry.id)
        if state is not None and state.is_unlocked:
            merged.append(replace(entry, is_unlocked=True, unlocked_date=state.unlocked_date))
        else:
            merged.append(replace(entry, is_unlocked=False, unlocked_date=None))
    return merged


def format_unlock_message(achievement: Achievement) -> str:
    return (
        f"Congratulations! You've earned the '{achievement.title}' achievement! "
        f"{achievement.icon}"
    )


class AchievementRegistry:
    """Catalog achievements with persisted, monotonic unlock state."""

    def __init__(
        self,
        data_dir: str | Path,
        notifier: NotificationPort,
        catalog: tuple[Achievement, ...] | list[Achievement] = ACHIEVEMENT_CATALOG,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._path = Path(data_dir) / ACHIEVEMENTS_FILE
        self._notifier = notifier
        self._clock = clock
        self._lock = threading.RLock()

        file_existed = self._path.exists()
        persisted = load_records(self._path, Achievement)
        self._achievements = reconcile(catalog, persisted)

        dropped = {a.id for a in persisted} - {a.id for a in self._achievements}
        if dropped:
            logger.info("Dropped unknown achievements from file: %s", sorted(dropped))
        if not file_existed:
            self._save()
        logger.info(
            "Achievements loaded: %d/%d unlocked",
            sum(a.is_unlocked for a in self._achievements), len(self._achievements),
        )

    def _save(self) -> None:
        save_records(self._path, self._achievements, Achievement)

    def achievements(self) -> list[Achievement]:
        with self._lock:
            return [replace(a) for a in self._achievements]

    def get(self, achievement_id: str) -> Achievement | None:
        with self._lock:
            for achievement in self._achievements:
                if achievement.id == achievement_id:
                    return replace(achievement)
        return None

    def is_unlocked(self, achievement_id: str) -> bool:
        achievement = self.get(achievement_id)
        return achievement is not None and achievement.is_unlocked

    def unlock(self, achievement_id: str) -> bool:
        """Unlock an achievement and announce it.

        Unknown or already unlocked ids are a no-op returning False.
        """
        with self._lock:
            target = next((a for a in self._achievements if a.id == achievement_id), None)
            if target is None:
                logger.warning("Unlock requested for unknown achievement %r", achievement_id)
                return False
            if target.is_unlocked:
                return False
            target.is_unlocked = True
            target.unlocked_date = self._clock()
            self._save()
            self._notifier.publish(format_unlock_message(target), SOURCE)
        logger.info("Achievement unlocked: %s", achievement_id)
        return True

    def reset(self) -> None:
        """Lock every achievement again. Persists once, announces nothing."""
        with self._lock:
            for achievement in self._achievements:
                achievement.is_unlocked = False
                achievement.unlocked_date = None
            self._save()
        logger.info("All achievements reset")

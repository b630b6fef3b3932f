"""
Companion Engine — Mood log.

Append-only mood entries persisted in ``mood_entries.json``. The current
mood is derived: the icon of the most recent recognised entry, or the first mood
option's icon while the log is empty.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Callable

from companion.core.errors import InvalidArgument
from companion.data.models import MoodEntry
from companion.data.storage import load_records, save_records

if TYPE_CHECKING:
    from companion.ports.notification_port import NotificationPort

logger = logging.getLogger(__name__)

MOOD_FILE = "mood_entries.json"
SOURCE = "mood"

MOOD_OPTIONS: dict[str, str] = {
    "Happy": "😊",
    "Excited": "🤩",
    "Playful": "😋",
    "Little": "🥺",
    "Tired": "😴",
    "Sad": "😢",
    "Cranky": "😡",
    "Anxious": "😰",
}
DEFAULT_MOOD = next(iter(MOOD_OPTIONS))


def resolve_mood(value: str) -> str | None:
    """Return the canonical mood name for a name or icon, or None."""
    if not value:
        return None
    wanted = value.strip()
    for name, icon in MOOD_OPTIONS.items():
        if wanted.lower() == name.lower() or wanted == icon:
            return name
    return None


def _derive_current(entries: list[MoodEntry]) -> str:
    """Mood of the newest recognised entry; later insertion wins timestamp ties.

    Entries whose mood is not one of ``MOOD_OPTIONS`` are skipped here but
    stay in the log.
    """
    best = None
    for i, entry in enumerate(entries):
        name = resolve_mood(entry.mood)
        if name is None:
            continue
        key = (entry.timestamp, i)
        if best is None or key > best[0]:
            best = (key, name)
    return best[1] if best else DEFAULT_MOOD


class MoodLog:
    """Append-only mood history."""

    def __init__(
        self,
        data_dir: str | Path,
        notifier: NotificationPort,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._path = Path(data_dir) / MOOD_FILE
        self._notifier = notifier
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: list[MoodEntry] = load_records(self._path, MoodEntry)
        unknown = sum(1 for e in self._entries if resolve_mood(e.mood) is None)
        if unknown:
            logger.warning("%d mood entries have an unrecognised mood, keeping them as stored", unknown)
        self._current = _derive_current(self._entries)
        logger.info("Loaded %d mood entries, current mood %s", len(self._entries), self._current)

    @property
    def current_mood(self) -> str:
        """Icon of the current mood."""
        return MOOD_OPTIONS[self._current]

    @property
    def current_mood_name(self) -> str:
        return self._current

    def add_entry(self, mood: str, note: str = "") -> MoodEntry:
        """Record a mood (name or icon) with an optional note.

        Raises:
            InvalidArgument: ``mood`` is not one of ``MOOD_OPTIONS``.
        """
        name = resolve_mood(mood)
        if name is None:
            raise InvalidArgument(f"Unknown mood: {mood!r}")

        entry = MoodEntry(mood=name, note=note or "", timestamp=self._clock())
        with self._lock:
            self._entries.append(entry)
            self._current = _derive_current(self._entries)
            self._save()
            self._notifier.publish(
                f"Thanks for sharing, you're feeling {name} {MOOD_OPTIONS[name]}", SOURCE,
            )
        logger.info("Mood recorded: %s", name)
        return replace(entry)

    def _save(self) -> None:
        save_records(self._path, self._entries, MoodEntry)

    def recent_entries(self, n: int = 5) -> list[MoodEntry]:
        """The ``n`` newest entries, newest first."""
        if n <= 0:
            return []
        with self._lock:
            ordered = sorted(
                enumerate(self._entries),
                key=lambda pair: (pair[1].timestamp, pair[0]),
                reverse=True,
            )
            return [replace(entry) for _, entry in ordered[:n]]

    def entries(self) -> list[MoodEntry]:
        with self._lock:
            return [replace(e) for e in self._entries]

    def distinct_days(self) -> set[date]:
        with self._lock:
            return {e.timestamp.date() for e in self._entries}

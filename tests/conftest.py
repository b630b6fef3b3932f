"""Shared test fixtures and configuration.

Sets up environment variables before any companion imports so the
settings singleton never touches a real data directory, and provides
common fixtures like a pinned clock and a recording notifier.
"""

import os
import tempfile

# Patch env vars BEFORE any companion imports
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="companion-tests-"))
os.environ.setdefault("NOTIFIER_RATE_PER_HOUR", "5")
os.environ.setdefault("CONTEXT_WINDOW_LENGTH", "10")

from datetime import datetime
from unittest.mock import MagicMock

import pytest


class FakeClock:
    """Callable clock that tests move by hand."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 3, 14, 9, 0, 0))


@pytest.fixture
def notifier():
    """A NotificationPort double that records every publish call."""
    port = MagicMock()
    port.has_entries.return_value = True
    return port


@pytest.fixture
def data_dir(tmp_path):
    return tmp_path / "data"


@pytest.fixture
def scheduler():
    """An EngineScheduler that is never started (jobs stay pending)."""
    from companion.core.scheduler import EngineScheduler
    return EngineScheduler()


@pytest.fixture
def reminder_store(data_dir, notifier, clock):
    from companion.core.reminders import ReminderStore
    return ReminderStore(data_dir, notifier, clock=clock)


@pytest.fixture
def registry(data_dir, notifier, clock):
    from companion.core.achievements import AchievementRegistry
    return AchievementRegistry(data_dir, notifier, clock=clock)


@pytest.fixture
def mood_log(data_dir, notifier, clock):
    from companion.core.mood import MoodLog
    return MoodLog(data_dir, notifier, clock=clock)

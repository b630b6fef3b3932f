"""Tests for companion.core.reminders — CRUD, recurrence and the due-check tick."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import MagicMock

import pytest

from companion.core.errors import InvalidArgument
from companion.core.reminders import JOB_ID, REMINDERS_FILE, ReminderStore
from companion.data.models import RecurrencePattern


def _published(notifier):
    return [c.args for c in notifier.publish.call_args_list]


# ---------------------------------------------------------------------------
# add / complete / delete
# ---------------------------------------------------------------------------


class TestReminderAdd:
    def test_add_returns_id_and_is_active(self, reminder_store, clock):
        rid = reminder_store.add("Drink water", "500ml", clock.now + timedelta(hours=1))
        active = reminder_store.active_reminders()
        assert [r.id for r in active] == [rid]
        assert active[0].title == "Drink water"
        assert active[0].is_completed is False

    def test_empty_title_raises(self, reminder_store, clock):
        with pytest.raises(InvalidArgument):
            reminder_store.add("", "msg", clock.now)

    def test_whitespace_title_raises(self, reminder_store, clock):
        with pytest.raises(InvalidArgument):
            reminder_store.add("   ", "msg", clock.now)
        assert reminder_store.reminders() == []

    def test_add_persists_immediately(self, reminder_store, data_dir, clock):
        reminder_store.add("Stretch", "", clock.now, True, RecurrencePattern.DAILY)
        data = json.loads((data_dir / REMINDERS_FILE).read_text(encoding="utf-8"))
        assert data[0]["title"] == "Stretch"
        assert data[0]["recurrence_pattern"] == "Daily"
        assert data[0]["is_recurring"] is True

    def test_add_does_not_notify(self, reminder_store, notifier, clock):
        reminder_store.add("Stretch", "", clock.now)
        notifier.publish.assert_not_called()

    def test_ids_are_unique(self, reminder_store, clock):
        ids = {reminder_store.add(f"R{i}", "", clock.now) for i in range(5)}
        assert len(ids) == 5


class TestActiveReminders:
    def test_ordered_by_due_time(self, reminder_store, clock):
        reminder_store.add("Later", "", clock.now + timedelta(hours=3))
        reminder_store.add("Soon", "", clock.now + timedelta(minutes=5))
        reminder_store.add("Middle", "", clock.now + timedelta(hours=1))
        assert [r.title for r in reminder_store.active_reminders()] == ["Soon", "Middle", "Later"]

    def test_returns_copies(self, reminder_store, clock):
        rid = reminder_store.add("Copy me", "", clock.now + timedelta(hours=1))
        snapshot = reminder_store.active_reminders()
        snapshot[0].title = "Mutated"
        snapshot.clear()
        assert reminder_store.get(rid).title == "Copy me"


class TestReminderComplete:
    def test_complete_removes_from_active(self, reminder_store, clock):
        rid = reminder_store.add("Task", "", clock.now + timedelta(hours=1))
        assert reminder_store.complete(rid) is True
        assert reminder_store.active_reminders() == []
        assert reminder_store.get(rid).is_completed is True

    def test_complete_twice_is_noop(self, reminder_store, notifier, data_dir, clock):
        rid = reminder_store.add("Task", "", clock.now + timedelta(hours=1))
        reminder_store.complete(rid)
        before = (data_dir / REMINDERS_FILE).read_text(encoding="utf-8")
        assert reminder_store.complete(rid) is False
        assert (data_dir / REMINDERS_FILE).read_text(encoding="utf-8") == before
        assert notifier.publish.call_count == 0

    def test_complete_unknown_is_noop(self, reminder_store):
        assert reminder_store.complete("missing") is False

    def test_complete_recurring_dismisses_series(self, reminder_store, clock):
        rid = reminder_store.add("Daily", "", clock.now, True, RecurrencePattern.DAILY)
        reminder_store.complete(rid)
        reminder_store.check_due(clock.now + timedelta(days=2))
        assert reminder_store.get(rid).is_completed is True


class TestReminderDelete:
    def test_delete_scheduled(self, reminder_store, clock):
        rid = reminder_store.add("Gone", "", clock.now)
        assert reminder_store.delete(rid) is True
        assert reminder_store.get(rid) is None

    def test_delete_completed(self, reminder_store, clock):
        rid = reminder_store.add("Gone", "", clock.now)
        reminder_store.complete(rid)
        assert reminder_store.delete(rid) is True
        assert reminder_store.reminders() == []

    def test_delete_unknown_is_noop(self, reminder_store):
        assert reminder_store.delete("missing") is False


# ---------------------------------------------------------------------------
# Recurrence state machine via check_due
# ---------------------------------------------------------------------------


class TestCheckDue:
    def test_non_recurring_completes_and_notifies_once(self, reminder_store, notifier, clock):
        reminder_store.add("Drink water", "Stay hydrated", clock.now)
        fired = reminder_store.check_due()
        assert [r.title for r in fired] == ["Drink water"]
        assert _published(notifier) == [("Reminder: Drink water - Stay hydrated", "reminders")]
        assert reminder_store.active_reminders() == []

    def test_second_tick_does_not_refire(self, reminder_store, notifier, clock):
        reminder_store.add("Once", "", clock.now)
        reminder_store.check_due()
        reminder_store.check_due(clock.now + timedelta(hours=1))
        assert notifier.publish.call_count == 1

    def test_future_reminder_not_fired(self, reminder_store, notifier, clock):
        reminder_store.add("Later", "", clock.now + timedelta(seconds=1))
        assert reminder_store.check_due() == []
        notifier.publish.assert_not_called()

    def test_daily_advances_one_day(self, reminder_store, clock):
        due = clock.now - timedelta(minutes=1)
        rid = reminder_store.add("Pills", "", due, True, RecurrencePattern.DAILY)
        reminder_store.check_due()
        reminder = reminder_store.get(rid)
        assert reminder.is_completed is False
        assert reminder.due_time == due + timedelta(days=1)

    def test_weekly_advances_seven_days(self, reminder_store, clock):
        rid = reminder_store.add("Laundry", "", clock.now, True, "weekly")
        reminder_store.check_due()
        assert reminder_store.get(rid).due_time == clock.now + timedelta(days=7)

    def test_unknown_pattern_completes(self, reminder_store, clock):
        rid = reminder_store.add("Odd", "", clock.now, True, "Monthly")
        reminder_store.check_due()
        reminder = reminder_store.get(rid)
        assert reminder.is_completed is True
        assert reminder.recurrence_pattern == "Monthly"

    def test_recurring_without_pattern_completes(self, reminder_store, clock):
        rid = reminder_store.add("Odd", "", clock.now, True)
        reminder_store.check_due()
        assert reminder_store.get(rid).is_completed is True

    def test_overdue_daily_fires_once_per_tick(self, reminder_store, notifier, clock):
        """Three days overdue still fires once; now is read once per tick."""
        rid = reminder_store.add("Pills", "", clock.now - timedelta(days=3), True, "Daily")
        reminder_store.check_due()
        assert notifier.publish.call_count == 1
        assert reminder_store.get(rid).due_time == clock.now - timedelta(days=2)

    def test_due_time_strictly_increases(self, reminder_store, clock):
        rid = reminder_store.add("Pills", "", clock.now, True, "Daily")
        seen = []
        for day in range(4):
            reminder_store.check_due(clock.now + timedelta(days=day))
            seen.append(reminder_store.get(rid).due_time)
        assert seen == sorted(seen)
        assert len(set(seen)) == len(seen)

    def test_batch_processed_earliest_first(self, reminder_store, notifier, clock):
        reminder_store.add("Third", "", clock.now - timedelta(minutes=1))
        reminder_store.add("First", "", clock.now - timedelta(minutes=30))
        reminder_store.add("Second", "", clock.now - timedelta(minutes=10))
        reminder_store.add("Not yet", "", clock.now + timedelta(minutes=10))
        reminder_store.check_due()
        titles = [args[0] for args in _published(notifier)]
        assert titles == ["Reminder: First", "Reminder: Second", "Reminder: Third"]

    def test_persists_before_publishing(self, data_dir, clock):
        """The saved file already shows the transition when the notification goes out."""
        seen = []

        def _publish(text, source):
            data = json.loads((data_dir / REMINDERS_FILE).read_text(encoding="utf-8"))
            seen.append(data[0]["is_completed"])

        port = MagicMock()
        port.publish.side_effect = _publish
        store = ReminderStore(data_dir, port, clock=clock)
        store.add("Check", "", clock.now)
        store.check_due()
        assert seen == [True]

    def test_change_listener_receives_active_list(self, reminder_store, clock):
        listener = MagicMock()
        reminder_store.on_change(listener)
        reminder_store.add("Soon", "", clock.now)
        reminder_store.check_due()
        assert listener.call_args_list[-1].args == ([],)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


class TestReminderLoad:
    def test_reload_from_disk(self, data_dir, notifier, clock):
        store = ReminderStore(data_dir, notifier, clock=clock)
        rid = store.add("Persist", "me", clock.now + timedelta(hours=1), True, "Weekly")
        reloaded = ReminderStore(data_dir, notifier, clock=clock)
        reminder = reloaded.get(rid)
        assert reminder.title == "Persist"
        assert reminder.pattern is RecurrencePattern.WEEKLY

    def test_corrupt_file_yields_empty_store(self, data_dir, notifier, clock):
        data_dir.mkdir(parents=True)
        (data_dir / REMINDERS_FILE).write_text("{{{ not json", encoding="utf-8")
        store = ReminderStore(data_dir, notifier, clock=clock)
        assert store.active_reminders() == []

    def test_old_completed_reminders_pruned(self, data_dir, notifier, clock):
        store = ReminderStore(data_dir, notifier, clock=clock)
        old = store.add("Old", "", clock.now - timedelta(days=30))
        recent = store.add("Recent", "", clock.now - timedelta(days=1))
        store.complete(old)
        store.complete(recent)
        reloaded = ReminderStore(data_dir, notifier, clock=clock)
        assert reloaded.get(old) is None
        assert reloaded.get(recent) is not None

    def test_offset_timestamps_load_as_local_time(self, data_dir, notifier, clock):
        data_dir.mkdir(parents=True)
        records = [
            {"id": "old", "title": "Old", "message": "", "due_time": "2020-01-01T08:00:00Z",
             "is_completed": True, "is_recurring": False, "recurrence_pattern": "None"},
            {"id": "due", "title": "Due", "message": "", "due_time": "2026-03-13T00:00:00Z",
             "is_completed": False, "is_recurring": False, "recurrence_pattern": "None"},
        ]
        (data_dir / REMINDERS_FILE).write_text(json.dumps(records), encoding="utf-8")

        store = ReminderStore(data_dir, notifier, clock=clock)

        assert store.get("old") is None
        assert store.get("due").due_time.tzinfo is None
        fired = store.check_due()
        assert [r.id for r in fired] == ["due"]
        notifier.publish.assert_called_once_with("Reminder: Due", "reminders")

    def test_add_with_aware_due_time_stored_naive(self, reminder_store, clock):
        rid = reminder_store.add("Call", "", datetime(2026, 3, 13, tzinfo=timezone.utc))
        assert reminder_store.get(rid).due_time.tzinfo is None
        assert [r.id for r in reminder_store.check_due()] == [rid]


# ---------------------------------------------------------------------------
# Timer lifecycle
# ---------------------------------------------------------------------------


class TestReminderTimer:
    def test_start_registers_single_job(self, reminder_store, scheduler):
        reminder_store.start(scheduler, 30)
        reminder_store.start(scheduler, 15)
        assert scheduler.job_ids() == [JOB_ID]
        assert scheduler.interval_of(JOB_ID) == 15

    def test_close_removes_job_and_stops_ticks(self, reminder_store, scheduler, notifier, clock):
        reminder_store.start(scheduler, 30)
        reminder_store.add("After close", "", clock.now)
        reminder_store.close()
        assert scheduler.has_job(JOB_ID) is False
        assert reminder_store.check_due() == []
        notifier.publish.assert_not_called()

    def test_start_after_close_raises(self, reminder_store, scheduler):
        reminder_store.close()
        with pytest.raises(RuntimeError):
            reminder_store.start(scheduler)

    @pytest.mark.asyncio
    async def test_tick_coroutine_runs_check(self, reminder_store, notifier, clock):
        reminder_store.add("Tick", "", clock.now)
        await reminder_store._on_tick()
        assert notifier.publish.call_count == 1

from datetime import datetime, time, timezone
from zoneinfo import ZoneInfo

from timebot.db import Database
from timebot.events import EventBus, MissedType, WorklogMissed
from timebot.reminders import ReminderService
from timebot.tracker import WorkTracker
from timebot.validator import Action


def _setup():
    db = Database(":memory:")
    db.initialize()
    bus = EventBus()
    missed = []
    bus.subscribe(WorklogMissed, missed.append)
    tracker = WorkTracker(db, ZoneInfo("UTC"))
    service = ReminderService(db, tracker, bus, morning_at=time(9, 30), evening_at=time(17, 30))
    return db, tracker, service, missed


def test_morning_reminder_fires_once_per_day() -> None:
    db, tracker, service, missed = _setup()
    alice = db.create_user("100", "Alice")
    bob = db.create_user("200", "Bob")
    tracker.apply_action(bob, Action.ARRIVE, now_utc=datetime(2024, 12, 23, 9, 0, tzinfo=timezone.utc))

    now = datetime(2024, 12, 23, 9, 30, 10, tzinfo=timezone.utc)
    assert service.run_due(now) == 1
    assert service.run_due(now) == 0

    assert [event.user.id for event in missed] == [alice.id]
    assert missed[0].missed_type is MissedType.ARRIVAL


def test_evening_reminder_targets_missing_reports() -> None:
    db, tracker, service, missed = _setup()
    alice = db.create_user("100", "Alice")
    tracker.apply_action(alice, Action.ARRIVE, now_utc=datetime(2024, 12, 23, 9, 0, tzinfo=timezone.utc))

    service.run_due(datetime(2024, 12, 23, 17, 30, tzinfo=timezone.utc))

    assert [event.missed_type for event in missed] == [MissedType.REPORT]


def test_nothing_outside_schedule_or_on_weekends() -> None:
    db, tracker, service, missed = _setup()
    db.create_user("100", "Alice")

    assert service.run_due(datetime(2024, 12, 23, 10, 0, tzinfo=timezone.utc)) == 0
    # 2024-12-21 is a Saturday.
    assert service.run_due(datetime(2024, 12, 21, 9, 30, tzinfo=timezone.utc)) == 0
    assert missed == []

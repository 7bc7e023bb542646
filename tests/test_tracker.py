from datetime import date, datetime, time, timezone
from zoneinfo import ZoneInfo

import pytest

from timebot.db import Database
from timebot.errors import ActionRejected, Violation
from timebot.events import MissedType
from timebot.models import Role, WorkMode
from timebot.tracker import WorkTracker
from timebot.validator import Action


def _at(hour: int, minute: int = 0, day: int = 23) -> datetime:
    return datetime(2024, 12, day, hour, minute, tzinfo=timezone.utc)


def _setup():
    db = Database(":memory:")
    db.initialize()
    tracker = WorkTracker(gateway=db, tz=ZoneInfo("UTC"))
    user = db.create_user("100", "Alice")
    return db, tracker, user


def test_full_day_totals_eight_hours() -> None:
    db, tracker, user = _setup()

    tracker.apply_action(user, Action.ARRIVE, mode=WorkMode.OFFICE, now_utc=_at(9))
    tracker.apply_action(user, Action.LUNCH_START, now_utc=_at(13))
    tracker.apply_action(user, Action.LUNCH_END, now_utc=_at(14))
    record = tracker.apply_action(user, Action.LEAVE, now_utc=_at(18))

    assert record.total_minutes == 480
    assert record.arrived_at == time(9)
    assert record.left_at == time(18)


def test_no_lunch_totals_nine_hours() -> None:
    db, tracker, user = _setup()

    tracker.apply_action(user, Action.ARRIVE, now_utc=_at(9))
    record = tracker.apply_action(user, Action.LEAVE, now_utc=_at(18))

    assert record.total_minutes == 540


def test_double_arrival_leaves_record_unchanged() -> None:
    db, tracker, user = _setup()
    first = tracker.apply_action(user, Action.ARRIVE, mode=WorkMode.REMOTE, now_utc=_at(9))

    with pytest.raises(ActionRejected) as excinfo:
        tracker.apply_action(user, Action.ARRIVE, mode=WorkMode.OFFICE, now_utc=_at(9, 30))

    assert excinfo.value.violation is Violation.ALREADY_ARRIVED
    assert tracker.today(user, _at(10)) == first


def test_lunch_after_leaving_keeps_total() -> None:
    db, tracker, user = _setup()
    tracker.apply_action(user, Action.ARRIVE, now_utc=_at(9))
    tracker.apply_action(user, Action.LUNCH_START, now_utc=_at(13))
    left = tracker.apply_action(user, Action.LEAVE, now_utc=_at(18))

    with pytest.raises(ActionRejected) as excinfo:
        tracker.apply_action(user, Action.LUNCH_END, now_utc=_at(18, 30))

    assert excinfo.value.violation is Violation.ALREADY_LEFT
    assert left.total_minutes == 540
    assert tracker.today(user, _at(19)) == left


def test_rejected_actions_do_not_create_records() -> None:
    db, tracker, user = _setup()

    with pytest.raises(ActionRejected):
        tracker.apply_action(user, Action.LEAVE, now_utc=_at(18))
    with pytest.raises(ActionRejected):
        tracker.apply_action(user, Action.LUNCH_END, now_utc=_at(14))

    assert tracker.today(user, _at(18)) is None


def test_new_day_allows_arrival_again() -> None:
    db, tracker, user = _setup()
    tracker.apply_action(user, Action.ARRIVE, now_utc=_at(9))

    record = tracker.apply_action(user, Action.ARRIVE, now_utc=_at(9, day=24))

    assert record.work_date == date(2024, 12, 24)


def test_local_day_uses_configured_timezone() -> None:
    db = Database(":memory:")
    db.initialize()
    tracker = WorkTracker(gateway=db, tz=ZoneInfo("Europe/Moscow"))
    user = db.create_user("100", "Alice")

    # 22:30 UTC is already the next day in Moscow.
    record = tracker.apply_action(user, Action.ARRIVE, now_utc=_at(22, 30))

    assert record.work_date == date(2024, 12, 24)
    assert record.arrived_at == time(1, 30)


def test_sick_day_after_arrival_resets_times() -> None:
    db, tracker, user = _setup()
    tracker.apply_action(user, Action.ARRIVE, now_utc=_at(9))

    record = tracker.apply_action(user, Action.SICK, now_utc=_at(10))

    assert record.work_mode is WorkMode.SICK
    assert record.arrived_at is None
    assert record.total_minutes == 0


def test_week_covers_monday_to_today() -> None:
    db, tracker, user = _setup()
    for day in (20, 23, 24, 25):
        tracker.apply_action(user, Action.ARRIVE, now_utc=_at(9, day=day))
        tracker.apply_action(user, Action.LEAVE, now_utc=_at(17, day=day))

    records = tracker.week(user, _at(18, day=25))

    assert [record.work_date.day for record in records] == [23, 24, 25]


def test_save_report_returns_previous_text() -> None:
    db, tracker, user = _setup()
    record = tracker.apply_action(user, Action.ARRIVE, now_utc=_at(9))

    tracker.save_report(record.id, "first")
    updated, previous = tracker.save_report(record.id, "  second  ")

    assert previous == "first"
    assert updated.daily_report == "second"


def test_users_missing_arrival_and_report() -> None:
    db, tracker, alice = _setup()
    bob = db.create_user("200", "Bob")
    carol = db.create_user("300", "Carol")
    manager = db.create_user("400", "Max", role=Role.MANAGER)

    tracker.apply_action(alice, Action.ARRIVE, now_utc=_at(9))
    tracker.apply_action(carol, Action.VACATION, now_utc=_at(9))

    users = db.list_active_users()
    day = date(2024, 12, 23)

    assert [u.name for u in tracker.users_missing(users, day, MissedType.ARRIVAL)] == ["Bob"]
    assert [u.name for u in tracker.users_missing(users, day, MissedType.REPORT)] == ["Alice"]
    assert manager not in tracker.users_missing(users, day, MissedType.ARRIVAL)
    assert bob in tracker.users_missing(users, day, MissedType.ARRIVAL)


def test_team_rows_sorted_by_minutes() -> None:
    db, tracker, alice = _setup()
    bob = db.create_user("200", "Bob")
    tracker.apply_action(alice, Action.ARRIVE, now_utc=_at(9))
    tracker.apply_action(alice, Action.LEAVE, now_utc=_at(12))
    tracker.apply_action(bob, Action.ARRIVE, now_utc=_at(8))
    tracker.apply_action(bob, Action.LEAVE, now_utc=_at(16))

    rows = tracker.team_rows(db.list_active_users(), date(2024, 12, 23))

    assert [row.display_name for row in rows] == ["Bob", "Alice"]
    assert [row.total_minutes for row in rows] == [480, 180]

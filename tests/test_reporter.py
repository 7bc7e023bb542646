from datetime import date, time

from timebot.models import DailyWorkRecord, Role, TeamStatsRow, WorkMode
from timebot.reporter import (
    build_day_content,
    build_help_content,
    build_team_content,
    build_week_content,
    format_minutes,
    main_menu_buttons,
)


def test_format_minutes() -> None:
    assert format_minutes(0) == "0h 00m"
    assert format_minutes(485) == "8h 05m"
    assert format_minutes(-3) == "0h 00m"


def test_day_content_without_record() -> None:
    assert "No activity recorded today." in build_day_content(date(2024, 12, 23), None)


def test_day_content_shows_lunch_in_progress() -> None:
    record = DailyWorkRecord(
        id=1,
        user_id=1,
        work_date=date(2024, 12, 23),
        arrived_at=time(9),
        lunch_start=time(13),
        daily_report="Reviewed PRs",
    )

    content = build_day_content(date(2024, 12, 23), record)

    assert "Lunch: 13:00 - in progress" in content
    assert "Report: Reviewed PRs" in content


def test_week_content_sums_minutes() -> None:
    records = [
        DailyWorkRecord(id=1, user_id=1, work_date=date(2024, 12, 23), arrived_at=time(9), left_at=time(18), total_minutes=480),
        DailyWorkRecord(id=2, user_id=1, work_date=date(2024, 12, 24), work_mode=WorkMode.SICK),
    ]

    content = build_week_content(date(2024, 12, 23), date(2024, 12, 24), records)

    assert "Days worked: 1" in content
    assert "Total: `8h 00m`" in content
    assert "Sick day" in content


def test_team_content_counts_check_ins() -> None:
    rows = [
        TeamStatsRow(1, "Alice", WorkMode.OFFICE, time(9), None, 0),
        TeamStatsRow(2, "Bob", None, None, None, 0),
    ]

    content = build_team_content(date(2024, 12, 23), rows)

    assert "- Bob: no check-in" in content
    assert "Checked in: 1/2" in content


def test_help_is_role_aware() -> None:
    assert "/promote" in build_help_content(Role.ADMIN)
    assert "/team" not in build_help_content(Role.EMPLOYEE)


def test_main_menu_has_every_day_action() -> None:
    custom_ids = {button.custom_id for row in main_menu_buttons() for button in row}

    assert {"arrived_office", "arrived_remote", "lunch_start", "lunch_end", "left_work", "sick_day"} <= custom_ids

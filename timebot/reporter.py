from __future__ import annotations

from datetime import date, time

from .callbacks import Callback, CallbackAction
from .models import (
    AbsenceRequest,
    AbsenceStatus,
    AbsenceType,
    Button,
    DailyWorkRecord,
    Role,
    TeamStatsRow,
    WorkMode,
)

ROLE_LABELS = {
    Role.EMPLOYEE: "Employee",
    Role.MANAGER: "Manager",
    Role.ADMIN: "Administrator",
}

WORK_MODE_LABELS = {
    WorkMode.OFFICE: "Office",
    WorkMode.REMOTE: "Remote",
    WorkMode.SICK: "Sick day",
    WorkMode.VACATION: "Vacation",
    WorkMode.ABSENT: "Absent",
}

ABSENCE_TYPE_LABELS = {
    AbsenceType.VACATION: "Vacation",
    AbsenceType.SICK: "Sick leave",
    AbsenceType.BUSINESS_TRIP: "Business trip",
    AbsenceType.DAY_OFF: "Day off",
}

ABSENCE_STATUS_LABELS = {
    AbsenceStatus.PENDING: "pending",
    AbsenceStatus.APPROVED: "approved",
    AbsenceStatus.REJECTED: "rejected",
}


def format_minutes(total_minutes: int) -> str:
    """Render a duration as ``Hh MMm``."""
    safe_minutes = max(0, int(total_minutes or 0))
    hours, minutes = divmod(safe_minutes, 60)
    return f"{hours}h {minutes:02}m"


def format_time(value: time | None, missing: str = "not marked") -> str:
    return value.strftime("%H:%M") if value is not None else missing


def format_date(value: date) -> str:
    return value.strftime("%d.%m.%Y")


def format_absence_line(absence: AbsenceRequest) -> str:
    line = (
        f"#{absence.id} {ABSENCE_TYPE_LABELS[absence.type]}: "
        f"{format_date(absence.start_date)} - {format_date(absence.end_date)} "
        f"({absence.days_count} d), {ABSENCE_STATUS_LABELS[absence.status]}"
    )
    if absence.reason:
        line += f"\n  Reason: {absence.reason}"
    if absence.rejection_reason:
        line += f"\n  Rejected because: {absence.rejection_reason}"
    return line


def build_day_content(day: date, record: DailyWorkRecord | None) -> str:
    header = f"**Your day ({format_date(day)})**"
    if record is None:
        return f"{header}\nNo activity recorded today."

    if record.work_mode in (WorkMode.SICK, WorkMode.VACATION):
        return f"{header}\nMode: {WORK_MODE_LABELS[record.work_mode]}"

    if record.lunch_start is not None:
        lunch = f"{format_time(record.lunch_start)} - {format_time(record.lunch_end, 'in progress')}"
    else:
        lunch = "none"

    lines = [
        header,
        f"Arrived: {format_time(record.arrived_at)}",
        f"Lunch: {lunch}",
        f"Left: {format_time(record.left_at)}",
        f"Mode: {WORK_MODE_LABELS[record.work_mode]}",
        f"Total: `{format_minutes(record.total_minutes)}`",
    ]
    if record.daily_report:
        lines.append(f"Report: {record.daily_report}")
    if record.problems:
        lines.append(f"Problems: {record.problems}")
    return "\n".join(lines)


def _record_summary(record: DailyWorkRecord) -> str:
    if record.work_mode in (WorkMode.SICK, WorkMode.VACATION):
        return f"- {format_date(record.work_date)}: {WORK_MODE_LABELS[record.work_mode]}"
    return (
        f"- {format_date(record.work_date)}: "
        f"{format_time(record.arrived_at, '--:--')}-{format_time(record.left_at, '--:--')} "
        f"`{format_minutes(record.total_minutes)}` ({WORK_MODE_LABELS[record.work_mode]})"
    )


def build_week_content(start: date, end: date, records: list[DailyWorkRecord]) -> str:
    header = f"**Your week ({format_date(start)} - {format_date(end)})**"
    if not records:
        return f"{header}\nNo activity recorded this week."

    total = sum(record.total_minutes for record in records)
    worked_days = sum(1 for record in records if record.total_minutes > 0)
    lines = [header]
    lines.extend(_record_summary(record) for record in records)
    lines.append(f"Days worked: {worked_days}")
    lines.append(f"Total: `{format_minutes(total)}`")
    return "\n".join(lines)


def build_history_content(records: list[DailyWorkRecord]) -> str:
    if not records:
        return "No work history yet."
    lines = [f"**Last {len(records)} days**"]
    lines.extend(_record_summary(record) for record in records)
    return "\n".join(lines)


def build_team_content(day: date, rows: list[TeamStatsRow] | tuple[TeamStatsRow, ...]) -> str:
    header = f"**Team on {format_date(day)}**"
    if not rows:
        return f"{header}\nNo active users."

    lines = [header]
    for row in rows:
        if row.work_mode is None:
            status = "no check-in"
        elif row.work_mode in (WorkMode.SICK, WorkMode.VACATION):
            status = WORK_MODE_LABELS[row.work_mode]
        else:
            status = (
                f"{WORK_MODE_LABELS[row.work_mode]}, {format_time(row.arrived_at, '--:--')}"
                f"-{format_time(row.left_at, 'now')} `{format_minutes(row.total_minutes)}`"
            )
        lines.append(f"- {row.display_name}: {status}")

    checked_in = sum(1 for row in rows if row.arrived_at is not None)
    lines.append(f"Checked in: {checked_in}/{len(rows)}")
    return "\n".join(lines)


def build_absences_content(absences: list[AbsenceRequest]) -> str:
    if not absences:
        return "You have no absence requests. Use /absence to file one."
    lines = ["**Your absence requests**"]
    lines.extend(format_absence_line(absence) for absence in absences)
    return "\n".join(lines)


def build_help_content(role: Role | None) -> str:
    lines = [
        "**TimeBot commands**",
        "/start - register and show the main menu",
        "/myday - today's record",
        "/myweek - this week's records",
        "/history - your last 10 days",
        "/editreport - rewrite today's report",
        "/absence - request an absence",
        "/absences - your absence requests",
        "/cancel - stop the current dialog",
        "/help - this message",
    ]
    if role in (Role.MANAGER, Role.ADMIN):
        lines.append("/team - today's status of the team")
        lines.append("Approve or reject absence requests with the buttons on each notification.")
    if role is Role.ADMIN:
        lines.append("/promote - change a user's role")
    return "\n".join(lines)


def main_menu_buttons() -> tuple[tuple[Button, ...], ...]:
    def button(label: str, action: CallbackAction) -> Button:
        return Button(label, Callback(action).encode())

    return (
        (button("At the office", CallbackAction.ARRIVED_OFFICE), button("Working remotely", CallbackAction.ARRIVED_REMOTE)),
        (button("Lunch", CallbackAction.LUNCH_START), button("Back from lunch", CallbackAction.LUNCH_END)),
        (button("Leaving", CallbackAction.LEFT_WORK), button("Sick day", CallbackAction.SICK_DAY)),
        (button("Vacation day", CallbackAction.VACATION_DAY), button("My stats", CallbackAction.MY_STATS)),
        (button("Request absence", CallbackAction.REQUEST_ABSENCE), button("My absences", CallbackAction.MY_ABSENCES)),
    )


def absence_type_buttons() -> tuple[tuple[Button, ...], ...]:
    buttons = tuple(
        Button(label, Callback(CallbackAction.CHOOSE_ABSENCE_TYPE, absence_type=absence_type).encode())
        for absence_type, label in ABSENCE_TYPE_LABELS.items()
    )
    return (buttons[:2], buttons[2:])


def moderation_buttons(absence_id: int) -> tuple[tuple[Button, ...], ...]:
    return (
        (
            Button("Approve", Callback(CallbackAction.APPROVE_ABSENCE, absence_id=absence_id).encode()),
            Button("Reject", Callback(CallbackAction.REJECT_ABSENCE, absence_id=absence_id).encode()),
        ),
    )

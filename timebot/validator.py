from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum
from typing import Any

from .errors import ActionRejected, Violation
from .models import DailyWorkRecord, WorkMode


class Action(str, Enum):
    ARRIVE = "arrive"
    LUNCH_START = "lunch_start"
    LUNCH_END = "lunch_end"
    LEAVE = "leave"
    SICK = "sick"
    VACATION = "vacation"


class DayState(str, Enum):
    NOT_STARTED = "not_started"
    ARRIVED = "arrived"
    LUNCH_STARTED = "lunch_started"
    LUNCH_ENDED = "lunch_ended"
    LEFT = "left"
    SICK = "sick"
    VACATION = "vacation"


def minutes_between(start: time | None, end: time | None) -> int:
    """Whole minutes from start to end on the same day; 0 when either is unset."""
    if start is None or end is None:
        return 0
    anchor = date.min
    delta = datetime.combine(anchor, end) - datetime.combine(anchor, start)
    return int(delta.total_seconds() // 60)


def compute_total_minutes(
    arrived_at: time | None,
    left_at: time | None,
    lunch_start: time | None = None,
    lunch_end: time | None = None,
) -> int:
    worked = minutes_between(arrived_at, left_at) - minutes_between(lunch_start, lunch_end)
    return max(0, worked)


def day_state(record: DailyWorkRecord | None) -> DayState:
    if record is None:
        return DayState.NOT_STARTED
    if record.work_mode is WorkMode.SICK:
        return DayState.SICK
    if record.work_mode is WorkMode.VACATION:
        return DayState.VACATION
    if record.left_at is not None:
        return DayState.LEFT
    if record.lunch_end is not None:
        return DayState.LUNCH_ENDED
    if record.lunch_start is not None:
        return DayState.LUNCH_STARTED
    if record.arrived_at is not None:
        return DayState.ARRIVED
    return DayState.NOT_STARTED


def plan_transition(
    record: DailyWorkRecord | None,
    action: Action,
    now: time,
    *,
    mode: WorkMode = WorkMode.OFFICE,
) -> dict[str, Any]:
    """Return the field patch that applies ``action`` to ``record``.

    Raises ActionRejected when a precondition fails; the caller must not write
    anything in that case. ``record`` may be None when no record exists yet for
    the day.
    """
    arrived_at = record.arrived_at if record else None
    lunch_start = record.lunch_start if record else None
    lunch_end = record.lunch_end if record else None
    left_at = record.left_at if record else None

    if action is Action.ARRIVE:
        if arrived_at is not None:
            raise ActionRejected(Violation.ALREADY_ARRIVED, arrived_at)
        return {"arrived_at": now, "work_mode": mode}

    if action is Action.LUNCH_START:
        if arrived_at is None:
            raise ActionRejected(Violation.NEED_ARRIVAL)
        if left_at is not None:
            raise ActionRejected(Violation.ALREADY_LEFT, left_at)
        if lunch_start is not None:
            raise ActionRejected(Violation.ALREADY_LUNCH_STARTED, lunch_start)
        return {"lunch_start": now}

    if action is Action.LUNCH_END:
        if lunch_start is None:
            raise ActionRejected(Violation.NEED_LUNCH_START)
        if lunch_end is not None:
            raise ActionRejected(Violation.ALREADY_LUNCH_ENDED, lunch_end)
        # A lunch left open at departure stays out of the total.
        if left_at is not None:
            raise ActionRejected(Violation.ALREADY_LEFT, left_at)
        return {"lunch_end": now}

    if action is Action.LEAVE:
        if arrived_at is None:
            raise ActionRejected(Violation.NEED_ARRIVAL)
        if left_at is not None:
            raise ActionRejected(Violation.ALREADY_LEFT, left_at)
        return {
            "left_at": now,
            "total_minutes": compute_total_minutes(arrived_at, now, lunch_start, lunch_end),
        }

    # Sick and vacation days replace whatever was recorded before.
    return {
        "arrived_at": None,
        "lunch_start": None,
        "lunch_end": None,
        "left_at": None,
        "total_minutes": 0,
        "work_mode": WorkMode.SICK if action is Action.SICK else WorkMode.VACATION,
    }

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum

from .errors import ValidationFailure
from .models import AbsenceType


class CallbackAction(str, Enum):
    ARRIVED_OFFICE = "arrived_office"
    ARRIVED_REMOTE = "arrived_remote"
    LUNCH_START = "lunch_start"
    LUNCH_END = "lunch_end"
    LEFT_WORK = "left_work"
    SICK_DAY = "sick_day"
    VACATION_DAY = "vacation_day"
    MY_STATS = "my_stats"
    REQUEST_ABSENCE = "request_absence"
    MY_ABSENCES = "my_absences"
    CHOOSE_ABSENCE_TYPE = "absence"
    APPROVE_ABSENCE = "approve_absence"
    REJECT_ABSENCE = "reject_absence"


@dataclass(frozen=True, slots=True)
class Callback:
    """Button data decoded once at the transport boundary."""

    action: CallbackAction
    absence_type: AbsenceType | None = None
    absence_id: int | None = None

    def encode(self) -> str:
        if self.action is CallbackAction.CHOOSE_ABSENCE_TYPE:
            return f"absence_{self.absence_type.value}"
        if self.action in (CallbackAction.APPROVE_ABSENCE, CallbackAction.REJECT_ABSENCE):
            return f"{self.action.value}_{self.absence_id}"
        return self.action.value


_SIMPLE_ACTIONS = {
    action.value: action
    for action in CallbackAction
    if action
    not in (
        CallbackAction.CHOOSE_ABSENCE_TYPE,
        CallbackAction.APPROVE_ABSENCE,
        CallbackAction.REJECT_ABSENCE,
    )
}
_MODERATION_RE = re.compile(r"^(approve|reject)_absence_(\d+)$")
_ABSENCE_TYPE_PREFIX = "absence_"


def parse_callback(data: str) -> Callback:
    """Decode raw button data such as ``left_work`` or ``reject_absence_12``."""
    if data in _SIMPLE_ACTIONS:
        return Callback(_SIMPLE_ACTIONS[data])

    match = _MODERATION_RE.match(data)
    if match is not None:
        verb, absence_id = match.groups()
        action = CallbackAction.APPROVE_ABSENCE if verb == "approve" else CallbackAction.REJECT_ABSENCE
        return Callback(action, absence_id=int(absence_id))

    if data.startswith(_ABSENCE_TYPE_PREFIX):
        try:
            absence_type = AbsenceType(data[len(_ABSENCE_TYPE_PREFIX):])
        except ValueError:
            pass
        else:
            return Callback(CallbackAction.CHOOSE_ABSENCE_TYPE, absence_type=absence_type)

    raise ValidationFailure("This button is no longer supported. Use /help to see what is available.")

from __future__ import annotations

from datetime import date, time
from enum import Enum


class BotError(Exception):
    """Base for failures that are reported back to the user as a single message."""

    def __init__(self, user_message: str) -> None:
        super().__init__(user_message)
        self.user_message = user_message


class ValidationFailure(BotError):
    pass


class AuthorizationFailure(BotError):
    pass


class Violation(str, Enum):
    ALREADY_ARRIVED = "already_arrived"
    NEED_ARRIVAL = "need_arrival"
    ALREADY_LUNCH_STARTED = "already_lunch_started"
    NEED_LUNCH_START = "need_lunch_start"
    ALREADY_LUNCH_ENDED = "already_lunch_ended"
    ALREADY_LEFT = "already_left"


VIOLATION_MESSAGES = {
    Violation.ALREADY_ARRIVED: "You already checked in today at {at}.",
    Violation.NEED_ARRIVAL: "Check in first.",
    Violation.ALREADY_LUNCH_STARTED: "Lunch already started at {at}.",
    Violation.NEED_LUNCH_START: "Start your lunch first.",
    Violation.ALREADY_LUNCH_ENDED: "You already returned from lunch at {at}.",
    Violation.ALREADY_LEFT: "You already left today at {at}.",
}


class ActionRejected(ValidationFailure):
    """An action that is not legal for the current state of the day's record."""

    def __init__(self, violation: Violation, conflicting_at: time | None = None) -> None:
        at = conflicting_at.strftime("%H:%M") if conflicting_at is not None else ""
        super().__init__(VIOLATION_MESSAGES[violation].format(at=at))
        self.violation = violation
        self.conflicting_at = conflicting_at


class InvalidDate(ValidationFailure):
    def __init__(self, raw: str, *, before: date | None = None) -> None:
        if before is not None:
            message = f"The end date cannot be earlier than {before.strftime('%d.%m.%Y')}."
        else:
            message = f"Could not read `{raw}` as a date. Use DD.MM.YYYY, for example 25.12.2024."
        super().__init__(message)
        self.raw = raw

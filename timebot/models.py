from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum


class Role(str, Enum):
    EMPLOYEE = "employee"
    MANAGER = "manager"
    ADMIN = "admin"


class WorkMode(str, Enum):
    OFFICE = "office"
    REMOTE = "remote"
    SICK = "sick"
    VACATION = "vacation"
    ABSENT = "absent"


class AbsenceType(str, Enum):
    VACATION = "vacation"
    SICK = "sick"
    BUSINESS_TRIP = "business_trip"
    DAY_OFF = "day_off"


class AbsenceStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


MODERATOR_ROLES = frozenset({Role.MANAGER, Role.ADMIN})


@dataclass(frozen=True, slots=True)
class User:
    id: int
    discord_id: str
    name: str
    username: str | None = None
    role: Role = Role.EMPLOYEE
    status: str = "active"

    @property
    def is_moderator(self) -> bool:
        return self.role in MODERATOR_ROLES


@dataclass(frozen=True, slots=True)
class DailyWorkRecord:
    id: int
    user_id: int
    work_date: date
    arrived_at: time | None = None
    lunch_start: time | None = None
    lunch_end: time | None = None
    left_at: time | None = None
    work_mode: WorkMode = WorkMode.OFFICE
    total_minutes: int = 0
    daily_report: str | None = None
    problems: str | None = None


@dataclass(frozen=True, slots=True)
class AbsenceDraft:
    type: AbsenceType
    start_date: date
    end_date: date
    reason: str | None = None

    @property
    def days_count(self) -> int:
        # Inclusive: a single-day absence counts as one day.
        return (self.end_date - self.start_date).days + 1


@dataclass(frozen=True, slots=True)
class AbsenceRequest:
    id: int
    user_id: int
    type: AbsenceType
    start_date: date
    end_date: date
    days_count: int
    status: AbsenceStatus = AbsenceStatus.PENDING
    reason: str | None = None
    approved_by: int | None = None
    rejection_reason: str | None = None
    approved_at: datetime | None = None
    created_at: datetime | None = None


@dataclass(frozen=True, slots=True)
class TeamStatsRow:
    user_id: int
    display_name: str
    work_mode: WorkMode | None
    arrived_at: time | None
    left_at: time | None
    total_minutes: int


@dataclass(frozen=True, slots=True)
class Button:
    label: str
    custom_id: str


@dataclass(frozen=True, slots=True)
class Reply:
    """One outbound chat message, optionally carrying rows of buttons."""

    text: str
    buttons: tuple[tuple[Button, ...], ...] = ()

from __future__ import annotations

import logging
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from .events import MissedType
from .models import DailyWorkRecord, Role, TeamStatsRow, User, WorkMode
from .validator import Action, DayState, day_state, plan_transition


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class WorkRecordGateway(Protocol):
    def find_work_log(self, user_id: int, day: date) -> DailyWorkRecord | None: ...

    def get_work_log(self, record_id: int) -> DailyWorkRecord | None: ...

    def find_or_create_work_log(self, user_id: int, day: date) -> DailyWorkRecord: ...

    def update_work_log(self, record: DailyWorkRecord, patch: dict[str, Any]) -> DailyWorkRecord: ...

    def list_work_logs(self, user_id: int, start: date, end: date) -> list[DailyWorkRecord]: ...

    def recent_work_logs(self, user_id: int, limit: int) -> list[DailyWorkRecord]: ...

    def list_work_logs_for_day(self, day: date) -> list[DailyWorkRecord]: ...


class WorkTracker:
    def __init__(self, gateway: WorkRecordGateway, tz: ZoneInfo, logger: logging.Logger | None = None) -> None:
        self.gateway = gateway
        self.tz = tz
        self.logger = logger or logging.getLogger(__name__)

    def local_now(self, now_utc: datetime | None = None) -> datetime:
        return (now_utc or utc_now()).astimezone(self.tz)

    def local_day(self, now_utc: datetime | None = None) -> date:
        return self.local_now(now_utc).date()

    def apply_action(
        self,
        user: User,
        action: Action,
        *,
        mode: WorkMode = WorkMode.OFFICE,
        now_utc: datetime | None = None,
    ) -> DailyWorkRecord:
        """Validate ``action`` against today's record and persist the result.

        ActionRejected propagates unchanged and nothing is written.
        """
        local = self.local_now(now_utc)
        # Stored times are whole seconds, so comparisons match what is read back.
        now_time = local.time().replace(microsecond=0, tzinfo=None)

        record = self.gateway.find_work_log(user.id, local.date())
        patch = plan_transition(record, action, now_time, mode=mode)

        if record is None:
            # Only arrive, sick and vacation get past plan_transition without a record.
            record = self.gateway.find_or_create_work_log(user.id, local.date())

        updated = self.gateway.update_work_log(record, patch)
        self.logger.info("Work log %s: user=%s action=%s", updated.id, user.id, action.value)
        return updated

    def today(self, user: User, now_utc: datetime | None = None) -> DailyWorkRecord | None:
        return self.gateway.find_work_log(user.id, self.local_day(now_utc))

    def week(self, user: User, now_utc: datetime | None = None) -> list[DailyWorkRecord]:
        today = self.local_day(now_utc)
        monday = today - timedelta(days=today.weekday())
        return self.gateway.list_work_logs(user.id, monday, today)

    def history(self, user: User, limit: int = 10) -> list[DailyWorkRecord]:
        return self.gateway.recent_work_logs(user.id, limit)

    def save_report(self, record_id: int, text: str) -> tuple[DailyWorkRecord, str | None]:
        """Store ``text`` as the day's report and return the record plus the previous report."""
        record = self.gateway.get_work_log(record_id)
        if record is None:
            raise LookupError(f"Work log {record_id} no longer exists")
        previous = record.daily_report
        updated = self.gateway.update_work_log(record, {"daily_report": text.strip()})
        return updated, previous

    def team_rows(self, users: list[User], day: date) -> list[TeamStatsRow]:
        records = {record.user_id: record for record in self.gateway.list_work_logs_for_day(day)}

        rows: list[TeamStatsRow] = []
        for user in users:
            record = records.get(user.id)
            rows.append(
                TeamStatsRow(
                    user_id=user.id,
                    display_name=user.name,
                    work_mode=record.work_mode if day_state(record) is not DayState.NOT_STARTED else None,
                    arrived_at=record.arrived_at if record else None,
                    left_at=record.left_at if record else None,
                    total_minutes=record.total_minutes if record else 0,
                )
            )
        rows.sort(key=lambda row: (-row.total_minutes, row.display_name.lower()))
        return rows

    def users_missing(self, users: list[User], day: date, missed_type: MissedType) -> list[User]:
        """Employees who still owe an arrival mark or a daily report for ``day``."""
        records = {record.user_id: record for record in self.gateway.list_work_logs_for_day(day)}

        missing: list[User] = []
        for user in users:
            if user.role is not Role.EMPLOYEE:
                continue
            record = records.get(user.id)
            if record is not None and record.work_mode in (WorkMode.SICK, WorkMode.VACATION):
                continue

            if missed_type is MissedType.ARRIVAL:
                if record is None or record.arrived_at is None:
                    missing.append(user)
            elif record is not None and record.arrived_at is not None and not record.daily_report:
                missing.append(user)
        return missing

    def local_time_of_day(self, now_utc: datetime | None = None) -> time:
        return self.local_now(now_utc).time().replace(second=0, microsecond=0, tzinfo=None)

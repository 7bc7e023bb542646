from __future__ import annotations

import logging
from datetime import datetime, time
from typing import Protocol

from .events import EventBus, MissedType, WorklogMissed
from .models import User
from .tracker import WorkTracker, utc_now

REMINDER_META_KEY = "last_{kind}_reminder_day"


class ReminderStore(Protocol):
    def list_active_users(self) -> list[User]: ...

    def get_meta(self, key: str) -> str | None: ...

    def set_meta(self, key: str, value: str) -> None: ...


class ReminderService:
    """Publishes worklog.missed for employees who forgot to check in or report."""

    def __init__(
        self,
        store: ReminderStore,
        tracker: WorkTracker,
        bus: EventBus,
        *,
        morning_at: time,
        evening_at: time,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store = store
        self.tracker = tracker
        self.bus = bus
        self.schedule = {
            MissedType.ARRIVAL: morning_at.replace(second=0, microsecond=0),
            MissedType.REPORT: evening_at.replace(second=0, microsecond=0),
        }
        self.logger = logger or logging.getLogger(__name__)

    def run_due(self, now_utc: datetime | None = None) -> int:
        """Fire every reminder scheduled for the current local minute; return events published."""
        now = now_utc or utc_now()
        local = self.tracker.local_now(now)

        # Weekdays only.
        if local.weekday() >= 5:
            return 0

        minute = self.tracker.local_time_of_day(now)
        published = 0
        for missed_type, at in self.schedule.items():
            if minute != at:
                continue

            key = REMINDER_META_KEY.format(kind=missed_type.value)
            day = local.date()
            # Guard against duplicate runs inside the same minute.
            if self.store.get_meta(key) == day.isoformat():
                continue

            users = self.tracker.users_missing(self.store.list_active_users(), day, missed_type)
            self.logger.info("Sending %s reminders to %d users for %s", missed_type.value, len(users), day)
            for user in users:
                self.bus.publish(WorklogMissed(user=user, date=day, missed_type=missed_type))
                published += 1

            self.store.set_meta(key, day.isoformat())
        return published

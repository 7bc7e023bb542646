from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Callable, ClassVar, TypeVar

from .models import AbsenceRequest, AbsenceStatus, DailyWorkRecord, Role, TeamStatsRow, User


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class MissedType(str, Enum):
    ARRIVAL = "arrival"
    REPORT = "report"


@dataclass(frozen=True, slots=True)
class DomainEvent:
    name: ClassVar[str] = ""


@dataclass(frozen=True, slots=True)
class UserCreated(DomainEvent):
    name: ClassVar[str] = "user.created"

    user: User
    timestamp: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True, slots=True)
class UserPromoted(DomainEvent):
    name: ClassVar[str] = "user.promoted"

    user: User
    old_role: Role
    new_role: Role
    promoted_by: User
    timestamp: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True, slots=True)
class WorklogMissed(DomainEvent):
    name: ClassVar[str] = "worklog.missed"

    user: User
    date: date
    missed_type: MissedType
    timestamp: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True, slots=True)
class LogEdited(DomainEvent):
    name: ClassVar[str] = "log.edited"

    user: User
    record: DailyWorkRecord
    # field name -> (old value, new value)
    changes: dict[str, tuple[Any, Any]]
    edited_by: User
    timestamp: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True, slots=True)
class TeamStatsReady(DomainEvent):
    name: ClassVar[str] = "team.stats.ready"

    requested_by: User
    date: date
    rows: tuple[TeamStatsRow, ...]
    timestamp: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True, slots=True)
class AbsenceCreated(DomainEvent):
    name: ClassVar[str] = "absence.created"

    absence: AbsenceRequest
    user: User
    timestamp: datetime = field(default_factory=_utc_now)


@dataclass(frozen=True, slots=True)
class AbsenceDecision(DomainEvent):
    name: ClassVar[str] = "absence.decision"

    absence: AbsenceRequest
    user: User
    decision: AbsenceStatus
    approver: User
    reason: str | None = None
    timestamp: datetime = field(default_factory=_utc_now)


EVENT_CATALOG: dict[str, type[DomainEvent]] = {
    cls.name: cls
    for cls in (
        UserCreated,
        UserPromoted,
        WorklogMissed,
        LogEdited,
        TeamStatsReady,
        AbsenceCreated,
        AbsenceDecision,
    )
}

E = TypeVar("E", bound=DomainEvent)
Handler = Callable[[Any], Any]


class EventBus:
    """In-process publish/subscribe over the closed event catalog.

    Handlers run in subscription order. A handler that raises is logged and the
    rest still run. Handlers that return an awaitable are scheduled on the
    running loop and not waited for; ``drain`` waits for them.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self._handlers: dict[str, list[Handler]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    def subscribe(self, event_type: type[E], handler: Callable[[E], Any]) -> None:
        if EVENT_CATALOG.get(event_type.name) is not event_type:
            raise ValueError(f"Unknown event type: {event_type!r}")
        self._handlers[event_type.name].append(handler)

    def handler_count(self, event_type: type[DomainEvent]) -> int:
        return len(self._handlers.get(event_type.name, ()))

    def publish(self, event: DomainEvent) -> int:
        """Deliver ``event`` to every subscriber and return how many accepted it."""
        if EVENT_CATALOG.get(event.name) is not type(event):
            raise ValueError(f"Unknown event: {event!r}")

        self.logger.debug("Event %s published", event.name)
        delivered = 0
        for handler in list(self._handlers.get(event.name, ())):
            try:
                result = handler(event)
            except Exception:
                self.logger.exception("Handler %r failed for %s", handler, event.name)
                continue

            if inspect.isawaitable(result):
                self._schedule(event.name, result)
            delivered += 1
        return delivered

    async def drain(self) -> None:
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def _schedule(self, event_name: str, awaitable: Any) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            self.logger.warning("No running loop; dropping async delivery of %s", event_name)
            if inspect.iscoroutine(awaitable):
                awaitable.close()
            return

        task = asyncio.ensure_future(awaitable, loop=loop)
        self._pending.add(task)

        def _done(finished: asyncio.Task) -> None:
            self._pending.discard(finished)
            if finished.cancelled():
                return
            exc = finished.exception()
            if exc is not None:
                self.logger.error("Async handler failed for %s", event_name, exc_info=exc)

        task.add_done_callback(_done)

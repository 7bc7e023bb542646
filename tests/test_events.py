import asyncio
from datetime import date

import pytest

from timebot.events import (
    EVENT_CATALOG,
    AbsenceCreated,
    DomainEvent,
    EventBus,
    UserCreated,
)
from timebot.models import AbsenceRequest, AbsenceType, User

USER = User(id=1, discord_id="100", name="Alice")
ABSENCE = AbsenceRequest(
    id=5,
    user_id=1,
    type=AbsenceType.VACATION,
    start_date=date(2024, 12, 25),
    end_date=date(2024, 12, 28),
    days_count=4,
)


def test_catalog_is_closed() -> None:
    assert set(EVENT_CATALOG) == {
        "user.created",
        "user.promoted",
        "worklog.missed",
        "log.edited",
        "team.stats.ready",
        "absence.created",
        "absence.decision",
    }


def test_handlers_run_once_in_subscription_order() -> None:
    bus = EventBus()
    calls = []
    bus.subscribe(AbsenceCreated, lambda event: calls.append(("first", event.absence.id)))
    bus.subscribe(AbsenceCreated, lambda event: calls.append(("second", event.absence.id)))

    delivered = bus.publish(AbsenceCreated(absence=ABSENCE, user=USER))

    assert delivered == 2
    assert calls == [("first", 5), ("second", 5)]


def test_failing_handler_does_not_block_others() -> None:
    bus = EventBus()
    calls = []

    def broken(event) -> None:
        raise RuntimeError("boom")

    bus.subscribe(AbsenceCreated, broken)
    bus.subscribe(AbsenceCreated, lambda event: calls.append(event.user.name))

    bus.publish(AbsenceCreated(absence=ABSENCE, user=USER))

    assert calls == ["Alice"]


def test_events_only_reach_their_own_subscribers() -> None:
    bus = EventBus()
    calls = []
    bus.subscribe(UserCreated, lambda event: calls.append(event.name))

    bus.publish(AbsenceCreated(absence=ABSENCE, user=USER))

    assert calls == []


def test_unknown_event_type_cannot_subscribe() -> None:
    bus = EventBus()

    with pytest.raises(ValueError):
        bus.subscribe(DomainEvent, lambda event: None)


def test_async_handlers_are_scheduled_and_drained() -> None:
    bus = EventBus()
    calls = []

    async def slow(event) -> None:
        await asyncio.sleep(0)
        calls.append("slow")

    async def failing(event) -> None:
        raise RuntimeError("delivery failed")

    bus.subscribe(UserCreated, failing)
    bus.subscribe(UserCreated, slow)

    async def scenario() -> None:
        bus.publish(UserCreated(user=USER))
        # Publishing does not wait for delivery.
        assert calls == []
        await bus.drain()

    asyncio.run(scenario())

    assert calls == ["slow"]


def test_event_carries_timestamp_and_name() -> None:
    event = UserCreated(user=USER)

    assert event.name == "user.created"
    assert event.timestamp.tzinfo is not None

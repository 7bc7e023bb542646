import asyncio
from datetime import date
from types import SimpleNamespace

import discord

from timebot.db import Database
from timebot.events import (
    AbsenceCreated,
    AbsenceDecision,
    EventBus,
    LogEdited,
    MissedType,
    TeamStatsReady,
    UserCreated,
    UserPromoted,
    WorklogMissed,
)
from timebot.models import AbsenceDraft, AbsenceStatus, AbsenceType, Role
from timebot.notifications import NotificationDispatcher


class FakeMessenger:
    def __init__(self, unreachable=()) -> None:
        self.sent = []
        self.channel = []
        self.unreachable = set(unreachable)

    async def send_to_user(self, discord_id, reply) -> None:
        if discord_id in self.unreachable:
            raise discord.Forbidden(SimpleNamespace(status=403, reason="Forbidden"), "Cannot send messages to this user")
        self.sent.append((discord_id, reply))

    async def send_to_channel(self, reply) -> None:
        self.channel.append(reply)


def _setup(unreachable=()):
    db = Database(":memory:")
    db.initialize()
    alice = db.create_user("100", "Alice")
    manager = db.create_user("200", "Max", role=Role.MANAGER)
    admin = db.create_user("300", "Root", role=Role.ADMIN)
    messenger = FakeMessenger(unreachable)
    bus = EventBus()
    NotificationDispatcher(db, messenger).register(bus)
    return db, bus, messenger, alice, manager, admin


def _publish(bus, event) -> None:
    async def scenario() -> None:
        bus.publish(event)
        await bus.drain()

    asyncio.run(scenario())


def _absence(db, user):
    return db.create_absence(
        user.id, AbsenceDraft(AbsenceType.VACATION, date(2024, 12, 25), date(2024, 12, 28), "Family trip")
    )


def test_absence_created_goes_to_moderators_with_buttons() -> None:
    db, bus, messenger, alice, manager, admin = _setup()
    absence = _absence(db, alice)

    _publish(bus, AbsenceCreated(absence=absence, user=alice))

    assert [recipient for recipient, _ in messenger.sent] == ["200", "300"]
    reply = messenger.sent[0][1]
    assert "Family trip" in reply.text
    assert [button.custom_id for button in reply.buttons[0]] == [
        f"approve_absence_{absence.id}",
        f"reject_absence_{absence.id}",
    ]


def test_unreachable_moderator_does_not_stop_delivery() -> None:
    db, bus, messenger, alice, manager, admin = _setup(unreachable={"200"})
    absence = _absence(db, alice)

    _publish(bus, AbsenceCreated(absence=absence, user=alice))

    assert [recipient for recipient, _ in messenger.sent] == ["300"]


def test_rejection_reaches_requester_with_reason() -> None:
    db, bus, messenger, alice, manager, admin = _setup()
    absence = db.update_absence_decision(_absence(db, alice).id, AbsenceStatus.REJECTED, "Release week", manager.id)

    _publish(
        bus,
        AbsenceDecision(
            absence=absence,
            user=alice,
            decision=AbsenceStatus.REJECTED,
            approver=manager,
            reason="Release week",
        ),
    )

    recipient, reply = messenger.sent[0]
    assert recipient == "100"
    assert "rejected" in reply.text
    assert "Release week" in reply.text
    assert "/absence" in reply.text


def test_missed_report_reminder() -> None:
    db, bus, messenger, alice, manager, admin = _setup()

    _publish(bus, WorklogMissed(user=alice, date=date(2024, 12, 23), missed_type=MissedType.REPORT))

    assert messenger.sent[0][0] == "100"
    assert "/editreport" in messenger.sent[0][1].text


def test_self_edit_notifies_moderators_only() -> None:
    db, bus, messenger, alice, manager, admin = _setup()
    record = db.find_or_create_work_log(alice.id, date(2024, 12, 23))

    _publish(
        bus,
        LogEdited(user=alice, record=record, changes={"daily_report": ("draft", "final")}, edited_by=alice),
    )

    assert [recipient for recipient, _ in messenger.sent] == ["200", "300"]
    assert "draft -> final" in messenger.sent[0][1].text


def test_promotion_and_team_stats() -> None:
    db, bus, messenger, alice, manager, admin = _setup()

    _publish(bus, UserPromoted(user=alice, old_role=Role.EMPLOYEE, new_role=Role.MANAGER, promoted_by=admin))
    _publish(bus, TeamStatsReady(requested_by=manager, date=date(2024, 12, 23), rows=()))

    assert "Manager" in messenger.sent[0][1].text
    assert "Requested by Max" in messenger.channel[0].text


def test_new_user_is_announced_in_the_report_channel() -> None:
    db, bus, messenger, alice, manager, admin = _setup()

    _publish(bus, UserCreated(user=alice))

    assert messenger.sent == []
    assert messenger.channel[0].text == "New user registered: Alice."

from __future__ import annotations

import logging
from typing import Protocol

import discord

from .events import (
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
from .models import AbsenceStatus, Reply, Role, User
from .reporter import (
    ABSENCE_TYPE_LABELS,
    ROLE_LABELS,
    build_team_content,
    format_date,
    moderation_buttons,
)


class Messenger(Protocol):
    async def send_to_user(self, discord_id: str, reply: Reply) -> None: ...

    async def send_to_channel(self, reply: Reply) -> None: ...


class RecipientDirectory(Protocol):
    def list_users_by_role(self, *roles: Role) -> list[User]: ...


class NotificationDispatcher:
    """Turns domain events into outbound chat messages.

    A recipient that cannot be reached (blocked DMs, unknown user) is expected
    and only logged at DEBUG; nothing is retried.
    """

    def __init__(
        self,
        directory: RecipientDirectory,
        messenger: Messenger,
        logger: logging.Logger | None = None,
    ) -> None:
        self.directory = directory
        self.messenger = messenger
        self.logger = logger or logging.getLogger(__name__)

    def register(self, bus: EventBus) -> None:
        bus.subscribe(UserCreated, self.on_user_created)
        bus.subscribe(UserPromoted, self.on_user_promoted)
        bus.subscribe(WorklogMissed, self.on_worklog_missed)
        bus.subscribe(LogEdited, self.on_log_edited)
        bus.subscribe(TeamStatsReady, self.on_team_stats_ready)
        bus.subscribe(AbsenceCreated, self.on_absence_created)
        bus.subscribe(AbsenceDecision, self.on_absence_decision)

    async def on_user_created(self, event: UserCreated) -> None:
        handle = f" (@{event.user.username})" if event.user.username else ""
        reply = Reply(f"New user registered: {event.user.name}{handle}.")
        await self._deliver("channel", self.messenger.send_to_channel(reply))

    async def on_user_promoted(self, event: UserPromoted) -> None:
        reply = Reply(
            f"Your role changed from {ROLE_LABELS[event.old_role]} to {ROLE_LABELS[event.new_role]} "
            f"(by {event.promoted_by.name}). Use /help to see your commands."
        )
        await self._send(event.user, reply)

    async def on_worklog_missed(self, event: WorklogMissed) -> None:
        day = format_date(event.date)
        if event.missed_type is MissedType.ARRIVAL:
            text = f"You have not checked in today ({day}). Use /start to open the menu."
        else:
            text = f"Your daily report for {day} is missing. Use /editreport to add it."
        await self._send(event.user, Reply(text))

    async def on_log_edited(self, event: LogEdited) -> None:
        changes = "\n".join(
            f"- {field.replace('_', ' ')}: {old or '(empty)'} -> {new or '(empty)'}"
            for field, (old, new) in event.changes.items()
        )
        day = format_date(event.record.work_date)

        if event.edited_by.id != event.user.id:
            await self._send(event.user, Reply(f"{event.edited_by.name} edited your work day {day}:\n{changes}"))

        reply = Reply(f"{event.user.name} updated the work day {day}:\n{changes}")
        await self._send_to_moderators(reply, exclude=event.edited_by)

    async def on_team_stats_ready(self, event: TeamStatsReady) -> None:
        content = build_team_content(event.date, event.rows)
        await self._deliver(
            "channel",
            self.messenger.send_to_channel(Reply(f"{content}\nRequested by {event.requested_by.name}")),
        )

    async def on_absence_created(self, event: AbsenceCreated) -> None:
        absence = event.absence
        lines = [
            f"**New absence request #{absence.id}**",
            f"Employee: {event.user.name}",
            f"Type: {ABSENCE_TYPE_LABELS[absence.type]}",
            f"Period: {format_date(absence.start_date)} - {format_date(absence.end_date)}",
            f"Days: {absence.days_count}",
        ]
        if absence.reason:
            lines.append(f"Reason: {absence.reason}")

        reply = Reply("\n".join(lines), buttons=moderation_buttons(absence.id))
        await self._send_to_moderators(reply, exclude=event.user)

    async def on_absence_decision(self, event: AbsenceDecision) -> None:
        absence = event.absence
        approved = event.decision is AbsenceStatus.APPROVED
        lines = [
            f"**Your absence request #{absence.id} was {'approved' if approved else 'rejected'}**",
            f"Type: {ABSENCE_TYPE_LABELS[absence.type]}",
            f"Period: {format_date(absence.start_date)} - {format_date(absence.end_date)}",
            f"Days: {absence.days_count}",
            f"Reviewed by: {event.approver.name}",
        ]
        if not approved:
            if event.reason:
                lines.append(f"Reason: {event.reason}")
            lines.append("You can file a new request with /absence.")
        await self._send(event.user, Reply("\n".join(lines)))

    async def _send_to_moderators(self, reply: Reply, *, exclude: User | None = None) -> None:
        for moderator in self.directory.list_users_by_role(Role.MANAGER, Role.ADMIN):
            if exclude is not None and moderator.id == exclude.id:
                continue
            await self._send(moderator, reply)

    async def _send(self, user: User, reply: Reply) -> None:
        await self._deliver(user.discord_id, self.messenger.send_to_user(user.discord_id, reply))

    async def _deliver(self, recipient: str, sending) -> None:
        try:
            await sending
        except discord.HTTPException as exc:
            self.logger.debug("Delivery to %s failed: %s", recipient, exc)

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, Protocol
from zoneinfo import ZoneInfo

from .callbacks import Callback, CallbackAction, parse_callback
from .cooldown import CooldownGuard
from .errors import AuthorizationFailure, BotError, ValidationFailure
from .events import AbsenceDecision, EventBus, LogEdited, TeamStatsReady, UserCreated, UserPromoted
from .models import AbsenceRequest, AbsenceStatus, DailyWorkRecord, Reply, Role, User, WorkMode
from .reporter import (
    ROLE_LABELS,
    absence_type_buttons,
    build_absences_content,
    build_day_content,
    build_help_content,
    build_history_content,
    build_team_content,
    build_week_content,
    format_minutes,
    format_time,
    main_menu_buttons,
)
from .sessions import (
    AbsenceWizardState,
    AwaitingRejectionReason,
    AwaitingReport,
    EditingReport,
    SessionState,
    SessionStore,
)
from .tracker import WorkRecordGateway, WorkTracker, utc_now
from .validator import Action, minutes_between
from .wizard import NO_REASON, AbsenceGateway, AbsenceWizard

GENERIC_ERROR = "Something went wrong. Please try again in a moment."
TOO_FAST = "Too fast, give it a second."
NOT_REGISTERED = "You are not registered yet. Use /start first."
HISTORY_LIMIT = 10

# Debounce windows in milliseconds. Button taps are cheap, report queries are not.
TAP_COOLDOWN_MS = 2000
LIGHT_COOLDOWN_MS = 1000
QUERY_COOLDOWN_MS = 3000


@dataclass(frozen=True, slots=True)
class Actor:
    """Who sent an inbound update, as reported by the chat transport."""

    discord_id: str
    name: str
    username: str | None = None


class UserDirectory(Protocol):
    def get_user(self, user_id: int) -> User | None: ...

    def get_user_by_discord_id(self, discord_id: str) -> User | None: ...

    def create_user(self, discord_id: str, name: str, username: str | None = None, role: Role = Role.EMPLOYEE) -> User: ...

    def update_user_role(self, user_id: int, role: Role) -> User: ...

    def list_active_users(self) -> list[User]: ...

    def list_users_by_role(self, *roles: Role) -> list[User]: ...


class Gateway(UserDirectory, WorkRecordGateway, AbsenceGateway, Protocol):
    pass


CommandHandler = Callable[[Actor, str], Awaitable[Reply]]
CallbackHandler = Callable[[User, Callback], Awaitable[Reply]]
TextHandler = Callable[[User, SessionState, str], Awaitable[Reply]]

_MARK_ACTIONS = {
    CallbackAction.ARRIVED_OFFICE: (Action.ARRIVE, WorkMode.OFFICE),
    CallbackAction.ARRIVED_REMOTE: (Action.ARRIVE, WorkMode.REMOTE),
    CallbackAction.LUNCH_START: (Action.LUNCH_START, WorkMode.OFFICE),
    CallbackAction.LUNCH_END: (Action.LUNCH_END, WorkMode.OFFICE),
    CallbackAction.LEFT_WORK: (Action.LEAVE, WorkMode.OFFICE),
    CallbackAction.SICK_DAY: (Action.SICK, WorkMode.SICK),
    CallbackAction.VACATION_DAY: (Action.VACATION, WorkMode.VACATION),
}


class BotEngine:
    """Routes commands, button presses and free text to their handlers.

    Every public entry point returns exactly one Reply. Validation and
    authorization failures become that reply; anything else is logged and
    answered with a generic retry message.
    """

    def __init__(
        self,
        users: UserDirectory,
        tracker: WorkTracker,
        absences: AbsenceGateway,
        wizard: AbsenceWizard,
        sessions: SessionStore,
        cooldowns: CooldownGuard,
        bus: EventBus,
        *,
        now: Callable[[], datetime] = utc_now,
        logger: logging.Logger | None = None,
    ) -> None:
        self.users = users
        self.tracker = tracker
        self.absences = absences
        self.wizard = wizard
        self.sessions = sessions
        self.cooldowns = cooldowns
        self.bus = bus
        self.now = now
        self.logger = logger or logging.getLogger(__name__)

        self._commands: dict[str, tuple[CommandHandler, int]] = {
            "start": (self._cmd_start, 0),
            "myday": (self._cmd_myday, TAP_COOLDOWN_MS),
            "myweek": (self._cmd_myweek, QUERY_COOLDOWN_MS),
            "team": (self._cmd_team, QUERY_COOLDOWN_MS),
            "help": (self._cmd_help, 0),
            "editreport": (self._cmd_editreport, LIGHT_COOLDOWN_MS),
            "cancel": (self._cmd_cancel, 0),
            "history": (self._cmd_history, QUERY_COOLDOWN_MS),
            "absence": (self._cmd_absence, LIGHT_COOLDOWN_MS),
            "absences": (self._cmd_absences, TAP_COOLDOWN_MS),
            "promote": (self._cmd_promote, TAP_COOLDOWN_MS),
        }
        self._callbacks: dict[CallbackAction, tuple[CallbackHandler, int]] = {
            **{action: (self._on_mark, TAP_COOLDOWN_MS) for action in _MARK_ACTIONS},
            CallbackAction.MY_STATS: (self._on_my_stats, QUERY_COOLDOWN_MS),
            CallbackAction.REQUEST_ABSENCE: (self._on_request_absence, LIGHT_COOLDOWN_MS),
            CallbackAction.CHOOSE_ABSENCE_TYPE: (self._on_choose_absence_type, LIGHT_COOLDOWN_MS),
            CallbackAction.MY_ABSENCES: (self._on_my_absences, TAP_COOLDOWN_MS),
            CallbackAction.APPROVE_ABSENCE: (self._on_approve, TAP_COOLDOWN_MS),
            CallbackAction.REJECT_ABSENCE: (self._on_reject, TAP_COOLDOWN_MS),
        }
        self._text_handlers: dict[type, TextHandler] = {
            AwaitingReport: self._text_report,
            EditingReport: self._text_edit_report,
            AbsenceWizardState: self._text_wizard,
            AwaitingRejectionReason: self._text_rejection_reason,
        }

    @classmethod
    def create(
        cls,
        gateway: Gateway,
        tz: ZoneInfo,
        bus: EventBus,
        *,
        now: Callable[[], datetime] = utc_now,
        cooldowns: CooldownGuard | None = None,
    ) -> BotEngine:
        sessions = SessionStore()
        return cls(
            users=gateway,
            tracker=WorkTracker(gateway, tz),
            absences=gateway,
            wizard=AbsenceWizard(gateway, sessions, bus),
            sessions=sessions,
            cooldowns=cooldowns if cooldowns is not None else CooldownGuard(),
            bus=bus,
            now=now,
        )

    @property
    def command_names(self) -> list[str]:
        return list(self._commands)

    # Entry points

    async def handle_command(self, actor: Actor, command: str, argument: str = "") -> Reply:
        name = command.removeprefix("/")
        route = self._commands.get(name)
        if route is None:
            return Reply(f"Unknown command `/{name}`. Use /help.")

        handler, cooldown_ms = route
        if cooldown_ms and self.cooldowns.is_on_cooldown(actor.discord_id, f"/{name}", cooldown_ms):
            return Reply(TOO_FAST)
        return await self._run(actor, f"/{name}", handler(actor, argument))

    async def handle_callback(self, actor: Actor, data: str) -> Reply:
        try:
            callback = parse_callback(data)
        except BotError as exc:
            return Reply(exc.user_message)

        handler, cooldown_ms = self._callbacks[callback.action]
        if self.cooldowns.is_on_cooldown(actor.discord_id, callback.encode(), cooldown_ms):
            self.logger.debug("Cooldown hit: user=%s action=%s", actor.discord_id, data)
            return Reply(TOO_FAST)
        return await self._run(actor, data, self._with_user(actor, handler, callback))

    async def handle_text(self, actor: Actor, text: str) -> Reply:
        stripped = text.strip()
        if stripped.startswith("/"):
            command, _, argument = stripped.partition(" ")
            return await self.handle_command(actor, command, argument.strip())
        return await self._run(actor, "text", self._dispatch_text(actor, stripped))

    # Plumbing

    async def _run(self, actor: Actor, label: str, work: Awaitable[Reply]) -> Reply:
        try:
            async with self.sessions.lock(actor.discord_id):
                return await work
        except BotError as exc:
            self.logger.debug("Rejected %s for user=%s: %s", label, actor.discord_id, exc.user_message)
            return Reply(exc.user_message)
        except Exception:
            self.logger.exception("Handler %s failed for user=%s", label, actor.discord_id)
            return Reply(GENERIC_ERROR)

    async def _with_user(self, actor: Actor, handler: CallbackHandler, callback: Callback) -> Reply:
        return await handler(self._require_user(actor), callback)

    def _require_user(self, actor: Actor) -> User:
        user = self.users.get_user_by_discord_id(actor.discord_id)
        if user is None:
            raise ValidationFailure(NOT_REGISTERED)
        if user.status != "active":
            raise AuthorizationFailure("Your account is inactive. Contact an administrator.")
        return user

    @staticmethod
    def _require_moderator(user: User) -> None:
        if not user.is_moderator:
            raise AuthorizationFailure("Only managers and administrators can do that.")

    async def _dispatch_text(self, actor: Actor, text: str) -> Reply:
        user = self._require_user(actor)
        state = self.sessions.get(actor.discord_id)
        handler = self._text_handlers.get(type(state))
        if handler is None:
            return Reply("Use the menu buttons or /help to see what I can do.")
        return await handler(user, state, text)

    # Commands

    async def _cmd_start(self, actor: Actor, argument: str) -> Reply:
        user = self.users.get_user_by_discord_id(actor.discord_id)
        if user is None:
            user = self.users.create_user(actor.discord_id, actor.name, actor.username)
            self.logger.info("Registered user %s (%s)", user.id, actor.discord_id)
            self.bus.publish(UserCreated(user=user))
            text = f"Welcome to TimeBot, {user.name}! You are registered as an employee."
        else:
            text = f"Welcome back, {user.name}! Your role: {ROLE_LABELS[user.role]}."
        return Reply(f"{text}\nChoose an action:", buttons=main_menu_buttons())

    async def _cmd_myday(self, actor: Actor, argument: str) -> Reply:
        user = self._require_user(actor)
        now = self.now()
        return Reply(build_day_content(self.tracker.local_day(now), self.tracker.today(user, now)))

    async def _cmd_myweek(self, actor: Actor, argument: str) -> Reply:
        return Reply(self._week_content(self._require_user(actor)))

    async def _cmd_team(self, actor: Actor, argument: str) -> Reply:
        user = self._require_user(actor)
        self._require_moderator(user)

        day = self.tracker.local_day(self.now())
        rows = tuple(self.tracker.team_rows(self.users.list_active_users(), day))
        self.bus.publish(TeamStatsReady(requested_by=user, date=day, rows=rows))
        return Reply(build_team_content(day, rows))

    async def _cmd_help(self, actor: Actor, argument: str) -> Reply:
        user = self.users.get_user_by_discord_id(actor.discord_id)
        return Reply(build_help_content(user.role if user else None))

    async def _cmd_editreport(self, actor: Actor, argument: str) -> Reply:
        user = self._require_user(actor)
        record = self.tracker.today(user, self.now())
        if record is None or record.arrived_at is None:
            raise ValidationFailure("There is no work day recorded today to report on.")

        self.sessions.set(actor.discord_id, EditingReport(record_id=record.id))
        current = record.daily_report or "(empty)"
        return Reply(f"Current report: {current}\nSend the new report text, or /cancel to keep it.")

    async def _cmd_cancel(self, actor: Actor, argument: str) -> Reply:
        if self.sessions.clear(actor.discord_id):
            return Reply("Cancelled.")
        return Reply("Nothing to cancel.")

    async def _cmd_history(self, actor: Actor, argument: str) -> Reply:
        user = self._require_user(actor)
        return Reply(build_history_content(self.tracker.history(user, HISTORY_LIMIT)))

    async def _cmd_absence(self, actor: Actor, argument: str) -> Reply:
        self._require_user(actor)
        return self._absence_menu()

    async def _cmd_absences(self, actor: Actor, argument: str) -> Reply:
        user = self._require_user(actor)
        return Reply(build_absences_content(self.absences.list_absences_for_user(user.id)))

    async def _cmd_promote(self, actor: Actor, argument: str) -> Reply:
        admin = self._require_user(actor)
        if admin.role is not Role.ADMIN:
            raise AuthorizationFailure("Only administrators can change roles.")

        parts = argument.split()
        if len(parts) != 2:
            raise ValidationFailure("Usage: /promote <user> <employee|manager|admin>")
        target_id = parts[0].strip("<@!>")
        try:
            new_role = Role(parts[1].lower())
        except ValueError:
            raise ValidationFailure(f"Unknown role `{parts[1]}`.") from None

        target = self.users.get_user_by_discord_id(target_id)
        if target is None:
            raise ValidationFailure("That user has not registered with the bot.")
        if target.role is new_role:
            raise ValidationFailure(f"{target.name} is already {ROLE_LABELS[new_role].lower()}.")

        updated = self.users.update_user_role(target.id, new_role)
        self.logger.info("User %s role %s -> %s by %s", target.id, target.role.value, new_role.value, admin.id)
        self.bus.publish(UserPromoted(user=updated, old_role=target.role, new_role=new_role, promoted_by=admin))
        return Reply(f"{updated.name} is now {ROLE_LABELS[new_role].lower()}.")

    # Callbacks

    async def _on_mark(self, user: User, callback: Callback) -> Reply:
        action, mode = _MARK_ACTIONS[callback.action]
        record = self.tracker.apply_action(user, action, mode=mode, now_utc=self.now())

        if action is Action.ARRIVE:
            where = "remotely" if mode is WorkMode.REMOTE else "at the office"
            return Reply(f"Checked in {where} at {format_time(record.arrived_at)}.")
        if action is Action.LUNCH_START:
            return Reply(f"Enjoy your lunch! Started at {format_time(record.lunch_start)}.")
        if action is Action.LUNCH_END:
            lunch = format_minutes(minutes_between(record.lunch_start, record.lunch_end))
            return Reply(f"Welcome back! Lunch took {lunch}.")
        if action is Action.LEAVE:
            self.sessions.set(user.discord_id, AwaitingReport(record_id=record.id))
            return Reply(
                f"Left at {format_time(record.left_at)}. Worked `{format_minutes(record.total_minutes)}` today.\n"
                "Send a short report of what you did today."
            )

        # A sick or vacation day leaves nothing to report on.
        if isinstance(self.sessions.get(user.discord_id), (AwaitingReport, EditingReport)):
            self.sessions.clear(user.discord_id)
        label = "Sick day" if action is Action.SICK else "Vacation day"
        return Reply(f"{label} recorded. Take care!")

    async def _on_my_stats(self, user: User, callback: Callback) -> Reply:
        now = self.now()
        day = build_day_content(self.tracker.local_day(now), self.tracker.today(user, now))
        return Reply(f"{day}\n\n{self._week_content(user)}")

    async def _on_request_absence(self, user: User, callback: Callback) -> Reply:
        return self._absence_menu()

    async def _on_choose_absence_type(self, user: User, callback: Callback) -> Reply:
        return self.wizard.start(user, callback.absence_type)

    async def _on_my_absences(self, user: User, callback: Callback) -> Reply:
        return Reply(build_absences_content(self.absences.list_absences_for_user(user.id)))

    async def _on_approve(self, user: User, callback: Callback) -> Reply:
        absence = self._load_pending_absence(user, callback.absence_id)
        self._decide(user, absence, AbsenceStatus.APPROVED, None)
        return Reply(f"Request #{absence.id} approved.")

    async def _on_reject(self, user: User, callback: Callback) -> Reply:
        absence = self._load_pending_absence(user, callback.absence_id)
        self.sessions.set(user.discord_id, AwaitingRejectionReason(absence_id=absence.id))
        return Reply(
            f"Rejecting request #{absence.id}.\n"
            f"Send the reason, `{NO_REASON}` to skip it, or /cancel to keep the request pending."
        )

    # Free text

    async def _text_report(self, user: User, state: AwaitingReport, text: str) -> Reply:
        self._save_report(user, state.record_id, text)
        self.sessions.clear(user.discord_id)
        return Reply("Report saved. Have a good evening!")

    async def _text_edit_report(self, user: User, state: EditingReport, text: str) -> Reply:
        record, previous = self._save_report(user, state.record_id, text)
        self.sessions.clear(user.discord_id)
        if previous != record.daily_report:
            self.bus.publish(
                LogEdited(
                    user=user,
                    record=record,
                    changes={"daily_report": (previous, record.daily_report)},
                    edited_by=user,
                )
            )
        return Reply("Report updated.")

    async def _text_wizard(self, user: User, state: AbsenceWizardState, text: str) -> Reply:
        return self.wizard.handle(user, state, text)

    async def _text_rejection_reason(self, user: User, state: AwaitingRejectionReason, text: str) -> Reply:
        reason = None if text == NO_REASON or not text else text
        try:
            absence = self._load_pending_absence(user, state.absence_id)
            self._decide(user, absence, AbsenceStatus.REJECTED, reason)
        finally:
            self.sessions.clear(user.discord_id)
        return Reply(f"Request #{absence.id} rejected.")

    # Helpers

    def _week_content(self, user: User) -> str:
        now = self.now()
        today = self.tracker.local_day(now)
        monday = today - timedelta(days=today.weekday())
        return build_week_content(monday, today, self.tracker.week(user, now))

    @staticmethod
    def _absence_menu() -> Reply:
        return Reply("What kind of absence?", buttons=absence_type_buttons())

    def _save_report(self, user: User, record_id: int, text: str) -> tuple[DailyWorkRecord, str | None]:
        if not text:
            raise ValidationFailure("The report cannot be empty. Send a few words about your day.")
        try:
            return self.tracker.save_report(record_id, text)
        except LookupError:
            self.sessions.clear(user.discord_id)
            raise ValidationFailure("That work day is no longer available. Check in again.") from None

    def _load_pending_absence(self, moderator: User, absence_id: int) -> AbsenceRequest:
        self._require_moderator(moderator)

        absence = self.absences.get_absence(absence_id)
        if absence is None:
            raise ValidationFailure(f"Request #{absence_id} was not found.")
        if absence.user_id == moderator.id:
            raise AuthorizationFailure("You cannot review your own request.")
        if absence.status is not AbsenceStatus.PENDING:
            raise ValidationFailure(f"Request #{absence.id} was already {absence.status.value}.")
        return absence

    def _decide(self, moderator: User, absence: AbsenceRequest, decision: AbsenceStatus, reason: str | None) -> None:
        requester = self.users.get_user(absence.user_id)
        if requester is None:
            raise ValidationFailure(f"The author of request #{absence.id} is no longer registered.")

        updated = self.absences.update_absence_decision(absence.id, decision, reason, moderator.id)
        self.logger.info("Absence %s %s by %s", absence.id, decision.value, moderator.id)
        self.bus.publish(
            AbsenceDecision(
                absence=updated,
                user=requester,
                decision=decision,
                approver=moderator,
                reason=reason,
            )
        )

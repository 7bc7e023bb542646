from __future__ import annotations

import logging
from dataclasses import replace
from datetime import date, datetime
from typing import Protocol

from .errors import InvalidDate, ValidationFailure
from .events import AbsenceCreated, EventBus
from .models import AbsenceDraft, AbsenceRequest, AbsenceStatus, AbsenceType, Reply, User
from .reporter import ABSENCE_TYPE_LABELS, format_absence_line, format_date
from .sessions import AbsenceWizardState, SessionStore, WizardStep

# Tried in order; the first format that parses wins.
DATE_FORMATS = ("%d.%m.%Y", "%d.%m.%y", "%Y-%m-%d", "%d/%m/%Y")
NO_REASON = "-"


class AbsenceGateway(Protocol):
    def find_overlapping_absences(self, user_id: int, start: date, end: date) -> list[AbsenceRequest]: ...

    def create_absence(self, user_id: int, draft: AbsenceDraft) -> AbsenceRequest: ...

    def get_absence(self, absence_id: int) -> AbsenceRequest | None: ...

    def update_absence_decision(
        self,
        absence_id: int,
        decision: AbsenceStatus,
        reason: str | None,
        approver_id: int,
    ) -> AbsenceRequest: ...

    def list_absences_for_user(self, user_id: int) -> list[AbsenceRequest]: ...


def parse_date(raw: str) -> date:
    text = raw.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise InvalidDate(raw)


class AbsenceWizard:
    """Collects start date, end date and reason, then files a pending request."""

    def __init__(
        self,
        gateway: AbsenceGateway,
        sessions: SessionStore,
        bus: EventBus,
        logger: logging.Logger | None = None,
    ) -> None:
        self.gateway = gateway
        self.sessions = sessions
        self.bus = bus
        self.logger = logger or logging.getLogger(__name__)

    def start(self, user: User, absence_type: AbsenceType) -> Reply:
        self.sessions.set(user.discord_id, AbsenceWizardState(type=absence_type))
        label = ABSENCE_TYPE_LABELS[absence_type]
        return Reply(
            f"Request: {label}.\n"
            "Send the first day (DD.MM.YYYY), or /cancel to stop."
        )

    def handle(self, user: User, state: AbsenceWizardState, text: str) -> Reply:
        if state.step is WizardStep.START_DATE:
            return self._take_start_date(user, state, text)
        if state.step is WizardStep.END_DATE:
            return self._take_end_date(user, state, text)
        if state.step is WizardStep.REASON:
            return self._take_reason(user, state, text)
        return self._create(user, state)

    def _take_start_date(self, user: User, state: AbsenceWizardState, text: str) -> Reply:
        start = parse_date(text)
        self.sessions.set(user.discord_id, replace(state, step=WizardStep.END_DATE, start_date=start))
        return Reply(f"First day: {format_date(start)}.\nNow send the last day (DD.MM.YYYY).")

    def _take_end_date(self, user: User, state: AbsenceWizardState, text: str) -> Reply:
        end = parse_date(text)
        if end < state.start_date:
            raise InvalidDate(text, before=state.start_date)

        overlapping = self.gateway.find_overlapping_absences(user.id, state.start_date, end)
        if overlapping:
            # Keep the chosen type, ask for the period again.
            self.sessions.set(user.discord_id, AbsenceWizardState(type=state.type))
            lines = "\n".join(format_absence_line(absence) for absence in overlapping)
            raise ValidationFailure(
                "These dates overlap an existing request:\n"
                f"{lines}\n"
                "Send a different first day (DD.MM.YYYY), or /cancel to stop."
            )

        self.sessions.set(user.discord_id, replace(state, step=WizardStep.REASON, end_date=end))
        return Reply(f"Last day: {format_date(end)}.\nSend a reason, or `{NO_REASON}` to skip.")

    def _take_reason(self, user: User, state: AbsenceWizardState, text: str) -> Reply:
        reason = text.strip()
        if reason == NO_REASON or not reason:
            reason = None
        return self._create(user, replace(state, step=WizardStep.CREATE, reason=reason))

    def _create(self, user: User, state: AbsenceWizardState) -> Reply:
        draft = AbsenceDraft(
            type=state.type,
            start_date=state.start_date,
            end_date=state.end_date,
            reason=state.reason,
        )
        absence = self.gateway.create_absence(user.id, draft)
        self.sessions.clear(user.discord_id)
        self.logger.info("Absence %s created: user=%s days=%s", absence.id, user.id, absence.days_count)

        self.bus.publish(AbsenceCreated(absence=absence, user=user))
        return Reply(
            "Request submitted and waiting for approval.\n"
            f"{format_absence_line(absence)}"
        )

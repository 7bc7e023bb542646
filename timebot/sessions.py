from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Union

from .models import AbsenceType


class WizardStep(str, Enum):
    START_DATE = "start_date"
    END_DATE = "end_date"
    REASON = "reason"
    CREATE = "create"


@dataclass(frozen=True, slots=True)
class Idle:
    pass


@dataclass(frozen=True, slots=True)
class AwaitingReport:
    record_id: int


@dataclass(frozen=True, slots=True)
class EditingReport:
    record_id: int


@dataclass(frozen=True, slots=True)
class AbsenceWizardState:
    type: AbsenceType
    step: WizardStep = WizardStep.START_DATE
    start_date: date | None = None
    end_date: date | None = None
    reason: str | None = None


@dataclass(frozen=True, slots=True)
class AwaitingRejectionReason:
    absence_id: int


SessionState = Union[Idle, AwaitingReport, EditingReport, AbsenceWizardState, AwaitingRejectionReason]

IDLE = Idle()


class SessionStore:
    """In-memory dialog state per user.

    Nothing here survives a restart; a dialog in progress is simply dropped.
    """

    def __init__(self) -> None:
        self._states: dict[str, SessionState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def __len__(self) -> int:
        return len(self._states)

    def get(self, user_id: str) -> SessionState:
        return self._states.get(user_id, IDLE)

    def set(self, user_id: str, state: SessionState) -> None:
        if isinstance(state, Idle):
            self.clear(user_id)
            return
        self._states[user_id] = state

    def clear(self, user_id: str) -> bool:
        return self._states.pop(user_id, None) is not None

    def lock(self, user_id: str) -> asyncio.Lock:
        # One lock per user keeps a read-decide-write sequence from interleaving
        # with a second update from the same user.
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

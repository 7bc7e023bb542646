from __future__ import annotations

import sqlite3
from datetime import date, datetime, time, timezone
from pathlib import Path
from typing import Any

from .models import (
    AbsenceDraft,
    AbsenceRequest,
    AbsenceStatus,
    AbsenceType,
    DailyWorkRecord,
    Role,
    User,
    WorkMode,
)

WORK_LOG_COLUMNS = (
    "arrived_at",
    "lunch_start",
    "lunch_end",
    "left_at",
    "work_mode",
    "total_minutes",
    "daily_report",
    "problems",
)
TIME_COLUMNS = frozenset({"arrived_at", "lunch_start", "lunch_end", "left_at"})


class Database:
    """Thin SQLite access layer for users, daily work logs and absence requests."""

    def __init__(self, db_path: str | Path) -> None:
        self._conn = sqlite3.connect(str(db_path))
        self._conn.row_factory = sqlite3.Row
        self._closed = False

    def close(self) -> None:
        if self._closed:
            return
        self._conn.close()
        self._closed = True

    def initialize(self) -> None:
        # users: people known to the bot, keyed by their Discord id.
        # work_logs: one attendance row per user and calendar day.
        # absences: absence requests and their moderation outcome.
        # meta: small key/value store for scheduler markers.
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS users (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              discord_id TEXT NOT NULL UNIQUE,
              name TEXT NOT NULL,
              username TEXT,
              role TEXT NOT NULL DEFAULT 'employee',
              status TEXT NOT NULL DEFAULT 'active',
              created_at_utc TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS work_logs (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id INTEGER NOT NULL REFERENCES users(id),
              work_date TEXT NOT NULL,
              arrived_at TEXT,
              lunch_start TEXT,
              lunch_end TEXT,
              left_at TEXT,
              work_mode TEXT NOT NULL DEFAULT 'office',
              total_minutes INTEGER NOT NULL DEFAULT 0,
              daily_report TEXT,
              problems TEXT,
              UNIQUE (user_id, work_date)
            );

            CREATE TABLE IF NOT EXISTS absences (
              id INTEGER PRIMARY KEY AUTOINCREMENT,
              user_id INTEGER NOT NULL REFERENCES users(id),
              type TEXT NOT NULL,
              start_date TEXT NOT NULL,
              end_date TEXT NOT NULL,
              reason TEXT,
              status TEXT NOT NULL DEFAULT 'pending',
              approved_by INTEGER REFERENCES users(id),
              rejection_reason TEXT,
              approved_at_utc TEXT,
              days_count INTEGER NOT NULL DEFAULT 1,
              created_at_utc TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS meta (
              key TEXT PRIMARY KEY,
              value TEXT NOT NULL
            );
            """
        )
        self._conn.commit()

    # Users

    def create_user(
        self,
        discord_id: str,
        name: str,
        username: str | None = None,
        role: Role = Role.EMPLOYEE,
    ) -> User:
        cursor = self._conn.execute(
            """
            INSERT INTO users (discord_id, name, username, role, created_at_utc)
            VALUES (?, ?, ?, ?, ?)
            """,
            (discord_id, name, username, role.value, _utc_now_iso()),
        )
        self._conn.commit()
        return self.get_user(cursor.lastrowid)

    def get_user(self, user_id: int) -> User | None:
        row = self._conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
        return _user_from_row(row) if row is not None else None

    def get_user_by_discord_id(self, discord_id: str) -> User | None:
        row = self._conn.execute("SELECT * FROM users WHERE discord_id = ?", (discord_id,)).fetchone()
        return _user_from_row(row) if row is not None else None

    def update_user_role(self, user_id: int, role: Role) -> User:
        self._conn.execute("UPDATE users SET role = ? WHERE id = ?", (role.value, user_id))
        self._conn.commit()
        return self.get_user(user_id)

    def list_active_users(self) -> list[User]:
        rows = self._conn.execute(
            "SELECT * FROM users WHERE status = 'active' ORDER BY name ASC, id ASC"
        ).fetchall()
        return [_user_from_row(row) for row in rows]

    def list_users_by_role(self, *roles: Role) -> list[User]:
        placeholders = ", ".join("?" for _ in roles)
        rows = self._conn.execute(
            f"SELECT * FROM users WHERE status = 'active' AND role IN ({placeholders}) ORDER BY id ASC",
            tuple(role.value for role in roles),
        ).fetchall()
        return [_user_from_row(row) for row in rows]

    # Work logs

    def find_work_log(self, user_id: int, day: date) -> DailyWorkRecord | None:
        row = self._conn.execute(
            "SELECT * FROM work_logs WHERE user_id = ? AND work_date = ?",
            (user_id, day.isoformat()),
        ).fetchone()
        return _record_from_row(row) if row is not None else None

    def get_work_log(self, record_id: int) -> DailyWorkRecord | None:
        row = self._conn.execute("SELECT * FROM work_logs WHERE id = ?", (record_id,)).fetchone()
        return _record_from_row(row) if row is not None else None

    def find_or_create_work_log(self, user_id: int, day: date) -> DailyWorkRecord:
        self._conn.execute(
            """
            INSERT INTO work_logs (user_id, work_date)
            VALUES (?, ?)
            ON CONFLICT(user_id, work_date) DO NOTHING
            """,
            (user_id, day.isoformat()),
        )
        self._conn.commit()
        return self.find_work_log(user_id, day)

    def update_work_log(self, record: DailyWorkRecord, patch: dict[str, Any]) -> DailyWorkRecord:
        unknown = set(patch) - set(WORK_LOG_COLUMNS)
        if unknown:
            raise ValueError(f"Unknown work log fields: {sorted(unknown)}")
        if not patch:
            return record

        assignments = ", ".join(f"{column} = ?" for column in patch)
        values = [_to_column(column, value) for column, value in patch.items()]
        self._conn.execute(
            f"UPDATE work_logs SET {assignments} WHERE id = ?",
            (*values, record.id),
        )
        self._conn.commit()
        return self.get_work_log(record.id)

    def list_work_logs(self, user_id: int, start: date, end: date) -> list[DailyWorkRecord]:
        rows = self._conn.execute(
            """
            SELECT * FROM work_logs
            WHERE user_id = ? AND work_date BETWEEN ? AND ?
            ORDER BY work_date ASC
            """,
            (user_id, start.isoformat(), end.isoformat()),
        ).fetchall()
        return [_record_from_row(row) for row in rows]

    def recent_work_logs(self, user_id: int, limit: int) -> list[DailyWorkRecord]:
        rows = self._conn.execute(
            "SELECT * FROM work_logs WHERE user_id = ? ORDER BY work_date DESC LIMIT ?",
            (user_id, limit),
        ).fetchall()
        return [_record_from_row(row) for row in rows]

    def list_work_logs_for_day(self, day: date) -> list[DailyWorkRecord]:
        rows = self._conn.execute(
            "SELECT * FROM work_logs WHERE work_date = ? ORDER BY user_id ASC",
            (day.isoformat(),),
        ).fetchall()
        return [_record_from_row(row) for row in rows]

    # Absences

    def create_absence(self, user_id: int, draft: AbsenceDraft) -> AbsenceRequest:
        cursor = self._conn.execute(
            """
            INSERT INTO absences (user_id, type, start_date, end_date, reason, days_count, created_at_utc)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                user_id,
                draft.type.value,
                draft.start_date.isoformat(),
                draft.end_date.isoformat(),
                draft.reason,
                draft.days_count,
                _utc_now_iso(),
            ),
        )
        self._conn.commit()
        return self.get_absence(cursor.lastrowid)

    def get_absence(self, absence_id: int) -> AbsenceRequest | None:
        row = self._conn.execute("SELECT * FROM absences WHERE id = ?", (absence_id,)).fetchone()
        return _absence_from_row(row) if row is not None else None

    def find_overlapping_absences(self, user_id: int, start: date, end: date) -> list[AbsenceRequest]:
        # Rejected requests no longer block the calendar.
        rows = self._conn.execute(
            """
            SELECT * FROM absences
            WHERE user_id = ?
              AND status != 'rejected'
              AND start_date <= ?
              AND end_date >= ?
            ORDER BY start_date ASC
            """,
            (user_id, end.isoformat(), start.isoformat()),
        ).fetchall()
        return [_absence_from_row(row) for row in rows]

    def update_absence_decision(
        self,
        absence_id: int,
        decision: AbsenceStatus,
        reason: str | None,
        approver_id: int,
    ) -> AbsenceRequest:
        self._conn.execute(
            """
            UPDATE absences
            SET status = ?, rejection_reason = ?, approved_by = ?, approved_at_utc = ?
            WHERE id = ?
            """,
            (decision.value, reason, approver_id, _utc_now_iso(), absence_id),
        )
        self._conn.commit()
        return self.get_absence(absence_id)

    def list_absences_for_user(self, user_id: int) -> list[AbsenceRequest]:
        rows = self._conn.execute(
            "SELECT * FROM absences WHERE user_id = ? ORDER BY start_date DESC, id DESC",
            (user_id,),
        ).fetchall()
        return [_absence_from_row(row) for row in rows]

    # Meta

    def get_meta(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM meta WHERE key = ?", (key,)).fetchone()
        if row is None:
            return None
        return str(row["value"])

    def set_meta(self, key: str, value: str) -> None:
        self._conn.execute(
            """
            INSERT INTO meta (key, value)
            VALUES (?, ?)
            ON CONFLICT(key)
            DO UPDATE SET value=excluded.value
            """,
            (key, value),
        )
        self._conn.commit()


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _parse_time(value: str | None) -> time | None:
    return time.fromisoformat(value) if value else None


def _parse_datetime(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _to_column(column: str, value: Any) -> Any:
    if value is None:
        return None
    if column in TIME_COLUMNS:
        return value.isoformat(timespec="seconds")
    if column == "work_mode":
        return WorkMode(value).value
    return value


def _user_from_row(row: sqlite3.Row) -> User:
    return User(
        id=row["id"],
        discord_id=row["discord_id"],
        name=row["name"],
        username=row["username"],
        role=Role(row["role"]),
        status=row["status"],
    )


def _record_from_row(row: sqlite3.Row) -> DailyWorkRecord:
    return DailyWorkRecord(
        id=row["id"],
        user_id=row["user_id"],
        work_date=date.fromisoformat(row["work_date"]),
        arrived_at=_parse_time(row["arrived_at"]),
        lunch_start=_parse_time(row["lunch_start"]),
        lunch_end=_parse_time(row["lunch_end"]),
        left_at=_parse_time(row["left_at"]),
        work_mode=WorkMode(row["work_mode"]),
        total_minutes=row["total_minutes"],
        daily_report=row["daily_report"],
        problems=row["problems"],
    )


def _absence_from_row(row: sqlite3.Row) -> AbsenceRequest:
    return AbsenceRequest(
        id=row["id"],
        user_id=row["user_id"],
        type=AbsenceType(row["type"]),
        start_date=date.fromisoformat(row["start_date"]),
        end_date=date.fromisoformat(row["end_date"]),
        days_count=row["days_count"],
        status=AbsenceStatus(row["status"]),
        reason=row["reason"],
        approved_by=row["approved_by"],
        rejection_reason=row["rejection_reason"],
        approved_at=_parse_datetime(row["approved_at_utc"]),
        created_at=_parse_datetime(row["created_at_utc"]),
    )

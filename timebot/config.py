from __future__ import annotations

import os
from dataclasses import dataclass
from datetime import time
from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


@dataclass(frozen=True, slots=True)
class Config:
    discord_token: str
    guild_id: int
    timezone: ZoneInfo
    report_channel_id: int | None
    database_path: Path
    morning_reminder_time: time
    evening_reminder_time: time
    reminders_enabled: bool
    log_level: str


def _required_env(name: str) -> str:
    value = os.getenv(name)
    if not value:
        raise ValueError(f"Missing required environment variable: {name}")
    return value.strip()


def _parse_int(name: str, value: str) -> int:
    try:
        parsed = int(value)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be an integer") from exc

    if parsed <= 0:
        raise ValueError(f"Environment variable {name} must be positive")
    return parsed


def _required_int_env(name: str) -> int:
    return _parse_int(name, _required_env(name))


def _optional_int_env(name: str) -> int | None:
    value = os.getenv(name, "").strip()
    if not value:
        return None
    return _parse_int(name, value)


def _timezone_from_env(name: str) -> ZoneInfo:
    tz_name = _required_env(name)
    try:
        return ZoneInfo(tz_name)
    except ZoneInfoNotFoundError as exc:
        raise ValueError(f"Invalid timezone in {name}: {tz_name}") from exc


def _time_from_env(name: str, default: str) -> time:
    raw = os.getenv(name, default).strip()
    try:
        return time.fromisoformat(raw)
    except ValueError as exc:
        raise ValueError(f"Environment variable {name} must be a time like 09:30") from exc


def _bool_from_env(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    raise ValueError(f"Environment variable {name} must be true or false")


def load_config() -> Config:
    return Config(
        discord_token=_required_env("DISCORD_TOKEN"),
        guild_id=_required_int_env("GUILD_ID"),
        timezone=_timezone_from_env("TIMEZONE"),
        report_channel_id=_optional_int_env("REPORT_CHANNEL_ID"),
        database_path=Path(os.getenv("DATABASE_PATH", "timebot.db").strip()),
        morning_reminder_time=_time_from_env("MORNING_REMINDER_TIME", "09:30"),
        evening_reminder_time=_time_from_env("EVENING_REMINDER_TIME", "17:30"),
        reminders_enabled=_bool_from_env("REMINDERS_ENABLED", True),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
    )

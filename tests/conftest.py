from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

import pytest

from timebot.cooldown import CooldownGuard
from timebot.db import Database
from timebot.events import EventBus
from timebot.router import BotEngine

TZ = ZoneInfo("UTC")


class FakeClock:
    """Wall clock the engine reads; tests move it by hand."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, hour: int, minute: int = 0) -> None:
        self.now = self.now.replace(hour=hour, minute=minute, second=0, microsecond=0)

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FakeTicks:
    """Monotonic seconds for the cooldown guard."""

    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


@pytest.fixture
def db():
    database = Database(":memory:")
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def bus() -> EventBus:
    return EventBus()


@pytest.fixture
def clock() -> FakeClock:
    # Monday morning.
    return FakeClock(datetime(2024, 12, 23, 9, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def ticks() -> FakeTicks:
    return FakeTicks()


@pytest.fixture
def engine(db, bus, clock, ticks) -> BotEngine:
    return BotEngine.create(db, TZ, bus, now=clock, cooldowns=CooldownGuard(ticks))

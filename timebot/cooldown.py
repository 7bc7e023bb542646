from __future__ import annotations

import time
from typing import Callable

DEFAULT_MAX_AGE_SECONDS = 600.0
DEFAULT_SWEEP_INTERVAL_SECONDS = 60.0


class CooldownGuard:
    """Per-(user, action) debounce for rapid repeated taps.

    ``is_on_cooldown`` both checks and arms the timer, so the first call inside
    a window passes and every further call inside it is rejected.
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        *,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
        sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL_SECONDS,
    ) -> None:
        self._clock = clock
        self._max_age = max_age_seconds
        self._sweep_interval = sweep_interval_seconds
        self._last_seen: dict[tuple[str, str], float] = {}
        self._last_sweep = clock()

    def __len__(self) -> int:
        return len(self._last_seen)

    def is_on_cooldown(self, user_id: str, action_key: str, window_ms: int) -> bool:
        now = self._clock()
        self._maybe_sweep(now)

        key = (user_id, action_key)
        previous = self._last_seen.get(key)
        self._last_seen[key] = now

        if previous is None:
            return False
        return (now - previous) * 1000 < window_ms

    def reset(self, user_id: str, action_key: str) -> None:
        self._last_seen.pop((user_id, action_key), None)

    def _maybe_sweep(self, now: float) -> None:
        if now - self._last_sweep < self._sweep_interval:
            return

        self._last_sweep = now
        stale = [key for key, seen in self._last_seen.items() if now - seen > self._max_age]
        for key in stale:
            del self._last_seen[key]

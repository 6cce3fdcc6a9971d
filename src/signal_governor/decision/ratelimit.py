"""Action rate limiting for automatic execution.

Two limits, both sliding windows over an injectable clock:

- ``min_time_between_actions``: per template, seconds since the last run
- ``max_actions_per_hour``: global, executions in the last 3600 s

Usage::

    limiter = ActionRateLimiter(max_actions_per_hour=10, min_time_between_actions=300)

    reason = limiter.check("restart_service")
    if reason is None:
        execute(...)
        limiter.record("restart_service")
"""

from __future__ import annotations

import threading
import time
from collections import deque
from collections.abc import Callable

HOUR_SECONDS = 3600.0


class ActionRateLimiter:
    """Thread-safe gate in front of the action executor.

    ``check`` never records; call ``record`` once the action actually ran.
    """

    def __init__(
        self,
        max_actions_per_hour: int = 10,
        min_time_between_actions: float = 300.0,
        _clock: Callable[[], float] | None = None,
    ) -> None:
        if max_actions_per_hour < 1:
            raise ValueError("max_actions_per_hour must be at least 1")
        if min_time_between_actions < 0:
            raise ValueError("min_time_between_actions must not be negative")
        self._max_per_hour = max_actions_per_hour
        self._min_gap = min_time_between_actions
        self._clock = _clock or time.monotonic
        self._lock = threading.Lock()
        self._executions: deque[float] = deque()
        self._last_by_template: dict[str, float] = {}

    def check(self, template_id: str) -> str | None:
        """Return None if *template_id* may run now, else the reason it may not."""
        now = self._clock()

        with self._lock:
            last = self._last_by_template.get(template_id)
            if last is not None and now - last < self._min_gap:
                remaining = self._min_gap - (now - last)
                return (
                    f"Action '{template_id}' ran {now - last:.0f}s ago; "
                    f"minimum gap is {self._min_gap:.0f}s ({remaining:.0f}s remaining)."
                )

            self._prune(now)
            if len(self._executions) >= self._max_per_hour:
                return (
                    f"Hourly action limit reached: {self._max_per_hour} actions "
                    f"in the last hour."
                )

        return None

    def record(self, template_id: str) -> None:
        now = self._clock()
        with self._lock:
            self._prune(now)
            self._executions.append(now)
            self._last_by_template[template_id] = now

    def actions_in_last_hour(self) -> int:
        now = self._clock()
        with self._lock:
            self._prune(now)
            return len(self._executions)

    def reset(self) -> None:
        with self._lock:
            self._executions.clear()
            self._last_by_template.clear()

    def _prune(self, now: float) -> None:
        cutoff = now - HOUR_SECONDS
        while self._executions and self._executions[0] <= cutoff:
            self._executions.popleft()

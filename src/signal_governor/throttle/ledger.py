"""Alert throttling by ``category:severity`` bucket.

Each throttle rule owns a bucket matched by a glob pattern over the
string ``"<category>:<severity>"``. A bucket suppresses further alerts
once it has counted ``max_alerts`` inside its window; the first alert
after the window elapses starts a fresh count of 1. All state is
in-memory and thread-safe via a single lock.

Usage::

    ledger = ThrottleLedger(default_throttle_rules())

    if ledger.should_suppress("system", "critical"):
        # Track the alert as suppressed, do not deliver
        ...
    else:
        ledger.record("system", "critical")
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from fnmatch import fnmatchcase

from signal_governor.models import ThrottleBucket, ThrottleRule


def default_throttle_rules() -> list[ThrottleRule]:
    return [
        ThrottleRule(id="anomaly_throttle", pattern="anomaly:*", max_alerts=10, window_minutes=60),
        ThrottleRule(id="decision_throttle", pattern="decision:*", max_alerts=5, window_minutes=30),
        ThrottleRule(id="system_throttle", pattern="system:*", max_alerts=3, window_minutes=15),
    ]


class ThrottleLedger:
    """Per-bucket alert volume tracker.

    Suppression check and recording are separate calls so the caller
    decides whether an attempt uses up a slot.
    """

    def __init__(
        self,
        rules: list[ThrottleRule],
        _clock: Callable[[], float] | None = None,
    ) -> None:
        self._clock = _clock or time.monotonic
        self._lock = threading.Lock()
        self._buckets: dict[str, ThrottleBucket] = {
            rule.id: ThrottleBucket(rule=rule) for rule in rules
        }

    @staticmethod
    def key(category: str, severity: str) -> str:
        return f"{category}:{severity}"

    def buckets(self) -> list[ThrottleBucket]:
        """Return a snapshot of every bucket's state."""
        with self._lock:
            return [b.model_copy(deep=True) for b in self._buckets.values()]

    def should_suppress(self, category: str, severity: str) -> bool:
        """True if any matching bucket is full within its window."""
        throttle_key = self.key(category, severity)
        now = self._clock()

        with self._lock:
            for bucket in self._matching(throttle_key):
                if bucket.last_alert is None:
                    continue
                elapsed = now - bucket.last_alert
                if (
                    elapsed < bucket.rule.window_minutes * 60
                    and bucket.count >= bucket.rule.max_alerts
                ):
                    return True
        return False

    def record(self, category: str, severity: str) -> None:
        """Count one alert against every matching bucket."""
        throttle_key = self.key(category, severity)
        now = self._clock()

        with self._lock:
            for bucket in self._matching(throttle_key):
                if (
                    bucket.last_alert is None
                    or now - bucket.last_alert >= bucket.rule.window_minutes * 60
                ):
                    bucket.count = 1
                else:
                    bucket.count += 1
                bucket.last_alert = now

    def reset(self) -> None:
        """Clear every bucket's count (manual operator reset)."""
        with self._lock:
            for bucket in self._buckets.values():
                bucket.count = 0
                bucket.last_alert = None

    def _matching(self, throttle_key: str) -> list[ThrottleBucket]:
        return [
            b for b in self._buckets.values()
            if fnmatchcase(throttle_key, b.rule.pattern)
        ]

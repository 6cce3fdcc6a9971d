"""Tests for the alert throttle ledger."""

from __future__ import annotations

import threading

from signal_governor.models import ThrottleRule
from signal_governor.throttle.ledger import ThrottleLedger, default_throttle_rules


class MockClock:
    """A controllable clock for testing time-dependent behavior."""

    def __init__(self, start: float = 1000.0) -> None:
        self._now = start

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds


def _ledger(clock: MockClock, *rules: ThrottleRule) -> ThrottleLedger:
    return ThrottleLedger(list(rules) or default_throttle_rules(), _clock=clock)


class TestDefaults:
    def test_default_rules(self):
        rules = {r.pattern: (r.max_alerts, r.window_minutes) for r in default_throttle_rules()}
        assert rules == {
            "anomaly:*": (10, 60),
            "decision:*": (5, 30),
            "system:*": (3, 15),
        }


class TestSuppression:
    def test_fresh_bucket_not_suppressed(self):
        ledger = _ledger(MockClock())
        assert ledger.should_suppress("system", "critical") is False

    def test_suppressed_at_max(self):
        ledger = _ledger(MockClock())
        for _ in range(3):
            assert not ledger.should_suppress("system", "critical")
            ledger.record("system", "critical")
        assert ledger.should_suppress("system", "critical") is True
        # Other severities share the system:* bucket
        assert ledger.should_suppress("system", "low") is True

    def test_unmatched_category_never_suppressed(self):
        ledger = _ledger(MockClock())
        for _ in range(50):
            ledger.record("security", "high")
        assert ledger.should_suppress("security", "high") is False

    def test_window_expiry_resets_count(self):
        clock = MockClock()
        ledger = _ledger(clock)
        for _ in range(3):
            ledger.record("system", "high")
        assert ledger.should_suppress("system", "high")

        clock.advance(15 * 60)
        assert ledger.should_suppress("system", "high") is False
        ledger.record("system", "high")
        bucket = next(b for b in ledger.buckets() if b.rule.id == "system_throttle")
        assert bucket.count == 1
        assert bucket.last_alert == clock()

    def test_just_inside_window_still_suppressed(self):
        clock = MockClock()
        ledger = _ledger(clock)
        for _ in range(3):
            ledger.record("system", "high")
        clock.advance(15 * 60 - 1)
        assert ledger.should_suppress("system", "high") is True

    def test_check_does_not_record(self):
        ledger = _ledger(MockClock())
        for _ in range(10):
            ledger.should_suppress("system", "critical")
        assert all(b.count == 0 for b in ledger.buckets())


class TestMultipleRules:
    def test_all_matching_buckets_updated(self):
        clock = MockClock()
        ledger = _ledger(
            clock,
            ThrottleRule(id="broad", pattern="*", max_alerts=100, window_minutes=60),
            ThrottleRule(id="crit", pattern="*:critical", max_alerts=2, window_minutes=10),
        )
        ledger.record("system", "critical")
        ledger.record("anomaly", "critical")
        counts = {b.rule.id: b.count for b in ledger.buckets()}
        assert counts == {"broad": 2, "crit": 2}
        assert ledger.should_suppress("decision", "critical") is True
        assert ledger.should_suppress("decision", "low") is False

    def test_case_sensitive_patterns(self):
        ledger = _ledger(
            MockClock(),
            ThrottleRule(id="r", pattern="system:*", max_alerts=1, window_minutes=1),
        )
        ledger.record("SYSTEM", "high")
        assert ledger.should_suppress("system", "high") is False


class TestReset:
    def test_reset_clears_state(self):
        ledger = _ledger(MockClock())
        for _ in range(3):
            ledger.record("system", "high")
        ledger.reset()
        assert ledger.should_suppress("system", "high") is False
        assert all(b.last_alert is None for b in ledger.buckets())


class TestThreadSafety:
    def test_concurrent_records(self):
        ledger = _ledger(
            MockClock(),
            ThrottleRule(id="all", pattern="*", max_alerts=10_000, window_minutes=60),
        )

        def worker():
            for _ in range(200):
                ledger.record("anomaly", "low")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert ledger.buckets()[0].count == 1600

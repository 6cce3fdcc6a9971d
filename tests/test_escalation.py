"""Tests for the escalation clock."""

from __future__ import annotations

import threading

from signal_governor.alerts.delivery import ChannelDelivery
from signal_governor.alerts.escalation import EscalationClock
from signal_governor.alerts.history import AlertHistory
from signal_governor.alerts.messages import build_alert
from signal_governor.models import (
    AlertMessage,
    AlertStatus,
    ChannelDefinition,
    ChannelType,
    EscalationPolicy,
    EscalationStep,
)
from signal_governor.routing.table import RoutingTable
from signal_governor.scheduler import TaskScheduler


class MockClock:
    """A controllable clock for testing time-dependent behavior."""

    def __init__(self, start: float = 1000.0) -> None:
        self._now = start

    def __call__(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        self._now += seconds


class RecordingAdapter:
    """Channel adapter that records deliveries and can fail on demand."""

    def __init__(self, fail_for: tuple[str, ...] = ()) -> None:
        self.fail_for = set(fail_for)
        self.delivered: list[tuple[str, AlertMessage]] = []
        self._lock = threading.Lock()

    def deliver(self, message: AlertMessage, channel: ChannelDefinition) -> None:
        if channel.id in self.fail_for:
            raise RuntimeError(f"{channel.id} is down")
        with self._lock:
            self.delivered.append((channel.id, message))


def _policy(*delays: float, enabled: bool = True) -> EscalationPolicy:
    return EscalationPolicy(
        id="oncall",
        enabled=enabled,
        steps=[
            EscalationStep(delay_minutes=d, channel_id=f"tier-{i + 1}", message=f"step {i + 1}")
            for i, d in enumerate(delays)
        ],
    )


class Harness:
    def __init__(self, fail_for: tuple[str, ...] = ()) -> None:
        self.clock = MockClock()
        self.scheduler = TaskScheduler(_clock=self.clock)
        self.history = AlertHistory()
        self.adapter = RecordingAdapter(fail_for)
        routing = RoutingTable([
            ChannelDefinition(id=f"tier-{i}", type="log") for i in range(1, 4)
        ])
        self.delivery = ChannelDelivery(routing, {ChannelType.LOG: self.adapter})
        self.clock_under_test = EscalationClock(self.scheduler, self.history, self.delivery)

    def sent_alert(self) -> str:
        alert = build_alert("DB down", "primary unreachable", "critical", "system", "test")
        self.history.add(alert)
        self.history.transition(alert.id, AlertStatus.SENT)
        return alert.id

    def advance_minutes(self, minutes: float) -> None:
        self.clock.advance(minutes * 60)
        self.scheduler.run_pending()


class TestArm:
    def test_single_step_fires_after_delay(self):
        h = Harness()
        aid = h.sent_alert()
        assert h.clock_under_test.arm(aid, _policy(5)) is True
        assert h.clock_under_test.is_armed(aid)

        h.advance_minutes(4)
        assert h.adapter.delivered == []
        assert h.history.get(aid).escalation_level == 0

        h.advance_minutes(1)
        assert h.history.get(aid).escalation_level == 1
        [(channel_id, message)] = h.adapter.delivered
        assert channel_id == "tier-1"
        assert message.title.startswith("ESCALATION LEVEL 1: ")
        assert "step 1" in message.body
        assert not h.clock_under_test.is_armed(aid)

    def test_steps_chain_and_levels_increase(self):
        h = Harness()
        aid = h.sent_alert()
        h.clock_under_test.arm(aid, _policy(5, 10, 15))

        levels = []
        for minutes in (5, 10, 15):
            h.advance_minutes(minutes)
            levels.append(h.history.get(aid).escalation_level)
        assert levels == [1, 2, 3]
        assert [c for c, _ in h.adapter.delivered] == ["tier-1", "tier-2", "tier-3"]
        assert h.clock_under_test.armed_alerts() == []

    def test_disabled_or_empty_policy_not_armed(self):
        h = Harness()
        aid = h.sent_alert()
        assert h.clock_under_test.arm(aid, _policy(5, enabled=False)) is False
        assert h.clock_under_test.arm(aid, _policy()) is False
        assert not h.clock_under_test.is_armed(aid)


class TestCancel:
    def test_acknowledged_alert_does_not_escalate(self):
        h = Harness()
        aid = h.sent_alert()
        h.clock_under_test.arm(aid, _policy(5))
        h.history.transition(aid, AlertStatus.ACKNOWLEDGED, actor="alice")

        h.advance_minutes(10)
        assert h.adapter.delivered == []
        assert h.history.get(aid).escalation_level == 0

    def test_cancel_stops_chain_and_is_idempotent(self):
        h = Harness()
        aid = h.sent_alert()
        h.clock_under_test.arm(aid, _policy(5, 5))
        h.advance_minutes(5)
        assert h.clock_under_test.cancel(aid) is True
        assert h.clock_under_test.cancel(aid) is False
        h.advance_minutes(30)
        assert h.history.get(aid).escalation_level == 1

    def test_resolved_between_steps(self):
        h = Harness()
        aid = h.sent_alert()
        h.clock_under_test.arm(aid, _policy(5, 5))
        h.advance_minutes(5)
        h.history.transition(aid, AlertStatus.RESOLVED)
        h.advance_minutes(5)
        assert h.history.get(aid).escalation_level == 1
        assert len(h.adapter.delivered) == 1


class TestDeliveryFailure:
    def test_chain_continues_after_failed_delivery(self):
        h = Harness(fail_for=("tier-1",))
        aid = h.sent_alert()
        h.clock_under_test.arm(aid, _policy(5, 5))

        h.advance_minutes(5)
        assert h.history.get(aid).escalation_level == 1
        assert h.adapter.delivered == []

        h.advance_minutes(5)
        assert h.history.get(aid).escalation_level == 2
        assert [c for c, _ in h.adapter.delivered] == ["tier-2"]

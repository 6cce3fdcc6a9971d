"""Tests for Signal Governor data models."""

from datetime import UTC, datetime

import pytest
from pydantic import ValidationError

from signal_governor.models import (
    PRIORITY_ORDER,
    ActionCategory,
    ActionTemplate,
    Alert,
    AlertCategory,
    AlertStatus,
    ChannelDefinition,
    ChannelType,
    DecisionAction,
    ImpactEstimate,
    PolicySnapshot,
    Priority,
    RiskLevel,
    Severity,
    Signal,
    SystemContext,
    ThrottleRule,
)

NOW = datetime(2025, 1, 1, tzinfo=UTC)


def _action(**overrides) -> DecisionAction:
    data = {
        "id": "dec-1",
        "template_id": "restart_service",
        "category": ActionCategory.REMEDIATION,
        "description": "Restart",
        "confidence": 0.9,
        "risk_score": 0.8,
        "risk_level": RiskLevel.HIGH,
        "priority": Priority.HIGH,
        "created_at": NOW,
    }
    data.update(overrides)
    return DecisionAction(**data)


class TestSignal:
    def test_valid(self):
        s = Signal(
            metric="error_rate", value=0.1, severity="high",
            confidence=0.9, timestamp=NOW,
        )
        assert s.severity == Severity.HIGH
        assert s.context == {}

    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            Signal(metric="m", value=1, severity="low", confidence=1.5, timestamp=NOW)

    def test_frozen(self):
        s = Signal(metric="m", value=1, severity="low", confidence=0.5, timestamp=NOW)
        with pytest.raises(ValidationError):
            s.value = 2


class TestActionTemplate:
    def test_id_pattern(self):
        with pytest.raises(ValidationError):
            ActionTemplate(
                id="Bad-Id", category="remediation", description="x", base_risk=0.1,
            )

    def test_base_risk_bounds(self):
        with pytest.raises(ValidationError):
            ActionTemplate(id="ok", category="remediation", description="x", base_risk=1.2)

    def test_impact_bounds(self):
        with pytest.raises(ValidationError):
            ImpactEstimate(cost=150)

    def test_frozen(self):
        t = ActionTemplate(id="ok", category="monitor", description="x", base_risk=0.1)
        with pytest.raises(ValidationError):
            t.requires_human_approval = True


class TestDecisionAction:
    def test_target_resource_from_service(self):
        assert _action(parameters={"service": "api"}).target_resource == "api"

    def test_target_resource_empty(self):
        assert _action().target_resource == ""
        assert _action(parameters={"service": None}).target_resource == ""

    def test_confidence_bounds(self):
        with pytest.raises(ValidationError):
            _action(confidence=1.01)


class TestPriorityOrder:
    def test_ordering(self):
        ordered = sorted(Priority, key=PRIORITY_ORDER.__getitem__)
        assert ordered == [Priority.LOW, Priority.MEDIUM, Priority.HIGH, Priority.CRITICAL]


class TestAlert:
    def test_defaults_and_to_dict(self):
        alert = Alert(
            id="alr-1", title="t", message="m", severity="critical",
            category="system", source="test", created_at=NOW,
        )
        assert alert.status == AlertStatus.PENDING
        assert alert.escalation_level == 0
        data = alert.to_dict()
        assert data["severity"] == "critical"
        assert data["category"] == AlertCategory.SYSTEM.value
        assert data["created_at"].startswith("2025-01-01")


class TestMisc:
    def test_policy_snapshot_frozen(self):
        p = PolicySnapshot(min_confidence=0.6)
        with pytest.raises(ValidationError):
            p.min_confidence = 0.7

    def test_throttle_rule_validation(self):
        with pytest.raises(ValidationError):
            ThrottleRule(id="r", pattern="*", max_alerts=0, window_minutes=1)

    def test_system_context_defaults(self):
        ctx = SystemContext()
        assert ctx.health == "healthy"
        assert ctx.recent_action_count == 0

    def test_channel_definition(self):
        ch = ChannelDefinition(id="ops", type="slack", settings={"webhook_url": "x"})
        assert ch.type == ChannelType.SLACK
        assert ch.escalation_policy is None
        with pytest.raises(ValidationError):
            ChannelDefinition(id="ops", type="carrier-pigeon")

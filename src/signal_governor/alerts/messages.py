"""Structured alert construction and message building.

Alerts are built from typed inputs (a Signal, a DecisionAction, an
escalation step) into an ``Alert`` record, and every delivery goes out as
an ``AlertMessage``. Channel-specific layout is the formatter's job in
``signal_governor.alerts.channels``.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from typing import Any

from signal_governor.models import (
    Alert,
    AlertCategory,
    AlertMessage,
    DecisionAction,
    EscalationStep,
    Priority,
    Severity,
    Signal,
)


def new_alert_id() -> str:
    return f"alr-{uuid.uuid4().hex[:12]}"


def build_alert(
    title: str,
    message: str,
    severity: Severity | str,
    category: AlertCategory | str,
    source: str,
    metadata: dict[str, Any] | None = None,
    suggested_actions: list[str] | None = None,
) -> Alert:
    """Create a pending Alert with a fresh id."""
    meta = dict(metadata or {})
    if suggested_actions:
        meta["suggested_actions"] = list(suggested_actions)
    return Alert(
        id=new_alert_id(),
        title=title,
        message=message,
        severity=Severity(severity),
        category=AlertCategory(category),
        source=source,
        metadata=meta,
        created_at=datetime.now(tz=UTC),
    )


def signal_alert(signal: Signal, suggested_actions: list[str] | None = None) -> Alert:
    """Alert describing an anomalous signal."""
    lines = [
        f"Metric: {signal.metric}",
        f"Value: {signal.value}",
        f"Severity: {signal.severity}",
        f"Confidence: {signal.confidence * 100:.1f}%",
        f"Observed at: {signal.timestamp.isoformat()}",
    ]
    explanation = signal.context.get("explanation")
    if explanation:
        lines.append(f"Explanation: {explanation}")
    return build_alert(
        title=f"ANOMALY: {signal.metric} - {signal.severity}",
        message="\n".join(lines),
        severity=signal.severity,
        category=AlertCategory.ANOMALY,
        source="signal-source",
        metadata={
            "metric": signal.metric,
            "value": signal.value,
            "confidence": signal.confidence,
            **{k: v for k, v in signal.context.items() if k != "explanation"},
        },
        suggested_actions=suggested_actions,
    )


def decision_alert(
    action: DecisionAction,
    headline: str = "DECISION",
    severity: Severity | None = None,
    extra: dict[str, Any] | None = None,
) -> Alert:
    """Alert describing a decision (executed, deferred, or failed)."""
    if severity is None:
        severity = Severity.CRITICAL if action.priority == Priority.CRITICAL else Severity.MEDIUM
    lines = [
        f"Action: {action.template_id} ({action.category})",
        f"Priority: {action.priority}",
        f"Confidence: {action.confidence * 100:.1f}%",
        f"Risk level: {action.risk_level}",
        f"Description: {action.description}",
        f"Rollback: {action.rollback_plan}",
    ]
    lines.extend(f"  {key}: {value}" for key, value in sorted(action.parameters.items()))
    return build_alert(
        title=f"{headline}: {action.template_id} - {action.priority}",
        message="\n".join(lines),
        severity=severity,
        category=AlertCategory.DECISION,
        source="decision-synthesizer",
        metadata={
            "decision_id": action.id,
            "template_id": action.template_id,
            "action_type": str(action.category),
            "priority": str(action.priority),
            "confidence": action.confidence,
            "risk_level": str(action.risk_level),
            "parameters": dict(action.parameters),
            **(extra or {}),
        },
    )


def alert_message(alert: Alert) -> AlertMessage:
    """The message delivered for an alert's initial notification."""
    fields: dict[str, Any] = {
        "severity": str(alert.severity).upper(),
        "category": str(alert.category),
        "source": alert.source,
    }
    fields.update({k: v for k, v in alert.metadata.items() if _is_scalar(v)})
    return AlertMessage(
        alert_id=alert.id,
        title=alert.title,
        body=alert.message,
        severity=alert.severity,
        category=alert.category,
        source=alert.source,
        fields=fields,
        escalation_level=alert.escalation_level,
        created_at=alert.created_at,
    )


def escalation_message(alert: Alert, step: EscalationStep, level: int) -> AlertMessage:
    """The message delivered when an unacknowledged alert escalates to *level*."""
    base = alert_message(alert)
    return base.model_copy(
        update={
            "title": f"ESCALATION LEVEL {level}: {alert.title}",
            "body": f"ESCALATION LEVEL {level}: {step.message}\n\n{alert.message}",
            "escalation_level": level,
        }
    )


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int, float, bool)) or value is None

"""Core data models for Signal Governor.

Defines the schemas for:
- Signals and system context (what was observed)
- Action templates and decision actions (what could be done)
- Outcomes and learning insights (what happened)
- Alerts, routing, throttling, and escalation (who gets told)
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# --- Enums ---


class Severity(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class HealthStatus(enum.StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    CRITICAL = "critical"


class ActionCategory(enum.StrEnum):
    REMEDIATION = "remediation"
    OPTIMIZATION = "optimization"
    ALERT = "alert"
    MONITOR = "monitor"


class RiskLevel(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Priority(enum.StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class AlertCategory(enum.StrEnum):
    SYSTEM = "system"
    PERFORMANCE = "performance"
    SECURITY = "security"
    ANOMALY = "anomaly"
    DECISION = "decision"
    COMPLIANCE = "compliance"


class AlertStatus(enum.StrEnum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"
    ACKNOWLEDGED = "acknowledged"
    RESOLVED = "resolved"
    SUPPRESSED = "suppressed"


class ChannelType(enum.StrEnum):
    SLACK = "slack"
    WEBHOOK = "webhook"
    PAGERDUTY = "pagerduty"
    LOG = "log"


class ConditionOperator(enum.StrEnum):
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    CONTAINS = "contains"
    REGEX = "regex"


PRIORITY_ORDER: dict[Priority, int] = {
    Priority.LOW: 1,
    Priority.MEDIUM: 2,
    Priority.HIGH: 3,
    Priority.CRITICAL: 4,
}


# --- Signals ---


class Signal(BaseModel):
    """An observed condition emitted by an external metric or anomaly source."""

    model_config = ConfigDict(frozen=True)

    metric: str
    value: float
    severity: Severity
    confidence: float = Field(..., ge=0.0, le=1.0)
    timestamp: datetime
    context: dict[str, Any] = Field(default_factory=dict)


class SystemContext(BaseModel):
    """Snapshot of system state that a decision is made against."""

    health: HealthStatus = HealthStatus.HEALTHY
    components: dict[str, HealthStatus] = Field(default_factory=dict)
    metrics: dict[str, float] = Field(default_factory=dict)
    cpu: float = Field(0.0, ge=0.0)
    memory: float = Field(0.0, ge=0.0)
    database: float = Field(0.0, ge=0.0)
    ai: float = Field(0.0, ge=0.0)
    peak_hours: bool = False
    active_users: int = 0
    recent_errors: int = 0
    recent_action_count: int = Field(0, ge=0)


# --- Action Catalog ---


class ImpactEstimate(BaseModel):
    """Estimated effect of an action, each axis in [-100, 100]."""

    performance: float = Field(0.0, ge=-100, le=100)
    reliability: float = Field(0.0, ge=-100, le=100)
    cost: float = Field(0.0, ge=-100, le=100)
    user_experience: float = Field(0.0, ge=-100, le=100)


class ActionTemplate(BaseModel):
    """A catalogued remediation or optimization action.

    Templates are immutable. Learned caution is stored separately as
    approval overrides on the learner's policy snapshot.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., pattern=r"^[a-z][a-z0-9_]*$")
    category: ActionCategory
    description: str
    base_risk: float = Field(..., ge=0.0, le=1.0)
    parameters: dict[str, Any] = Field(default_factory=dict)
    estimated_impact: ImpactEstimate = Field(default_factory=ImpactEstimate)
    execution_time_seconds: float = Field(60.0, ge=0)
    requires_human_approval: bool = False
    rollback_plan: str = "Manual intervention required"


# --- Decisions ---


class DecisionAction(BaseModel):
    """A scored, instantiated candidate derived from an ActionTemplate."""

    id: str
    template_id: str
    category: ActionCategory
    description: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    risk_score: float
    risk_level: RiskLevel
    priority: Priority
    parameters: dict[str, Any] = Field(default_factory=dict)
    estimated_impact: ImpactEstimate = Field(default_factory=ImpactEstimate)
    rollback_plan: str = ""
    execution_time_seconds: float = 0.0
    requires_human_approval: bool = False
    source_metric: str | None = None
    created_at: datetime

    @property
    def target_resource(self) -> str:
        """The resource this action operates on (used for deduplication)."""
        return str(self.parameters.get("service") or "")


class Outcome(BaseModel):
    """The recorded result of executing a DecisionAction."""

    action_id: str
    template_id: str
    confidence: float = 0.0
    success: bool
    execution_time_ms: float
    errors: list[str] = Field(default_factory=list)
    impact: dict[str, float] = Field(default_factory=dict)
    timestamp: datetime


class LearningInsight(BaseModel):
    """A pattern derived from recent outcomes, with the adjustment it drove."""

    id: str
    pattern: str
    confidence: float
    recommendation: str
    template_id: str | None = None
    evidence: list[str] = Field(default_factory=list)
    timestamp: datetime


class PolicySnapshot(BaseModel):
    """Versioned, immutable view of learned safety policy.

    Replaced wholesale whenever the learner tightens a threshold, so
    readers always see a consistent set of values.
    """

    model_config = ConfigDict(frozen=True)

    version: int = 0
    min_confidence: float
    approval_overrides: dict[str, bool] = Field(default_factory=dict)


# --- Throttling ---


class ThrottleRule(BaseModel):
    """Configuration for a throttle bucket keyed by a ``category:severity`` glob."""

    id: str
    pattern: str
    max_alerts: int = Field(..., ge=1)
    window_minutes: float = Field(..., gt=0)


class ThrottleBucket(BaseModel):
    """Live state for a throttle rule."""

    rule: ThrottleRule
    count: int = 0
    last_alert: float | None = None


# --- Routing & Escalation ---


class RoutingCondition(BaseModel):
    """A single ``field operator value`` test against an alert."""

    field: str
    operator: ConditionOperator
    value: Any = None


class RoutingRule(BaseModel):
    """AND-combined conditions that route an alert to a channel."""

    id: str
    name: str = ""
    conditions: list[RoutingCondition] = Field(default_factory=list)
    channel_id: str
    enabled: bool = True


class EscalationStep(BaseModel):
    delay_minutes: float = Field(..., ge=0)
    channel_id: str
    message: str


class EscalationPolicy(BaseModel):
    id: str
    steps: list[EscalationStep] = Field(default_factory=list)
    enabled: bool = True


class ChannelDefinition(BaseModel):
    """A delivery destination plus the rules that route alerts to it."""

    id: str
    type: ChannelType
    name: str = ""
    enabled: bool = True
    settings: dict[str, Any] = Field(default_factory=dict)
    routing_rules: list[RoutingRule] = Field(default_factory=list)
    escalation_policy: EscalationPolicy | None = None
    timeout_seconds: float | None = Field(None, gt=0)


# --- Alerts ---


class Alert(BaseModel):
    """A notification-worthy event routed to zero or more channels."""

    id: str
    title: str
    message: str
    severity: Severity
    category: AlertCategory
    source: str
    metadata: dict[str, Any] = Field(default_factory=dict)
    status: AlertStatus = AlertStatus.PENDING
    channels: list[str] = Field(default_factory=list)
    delivery: dict[str, bool] = Field(default_factory=dict)
    escalation_level: int = Field(0, ge=0)
    created_at: datetime
    acknowledged_at: datetime | None = None
    acknowledged_by: str | None = None
    resolved_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class AlertMessage(BaseModel):
    """Typed payload handed to a channel formatter."""

    alert_id: str
    title: str
    body: str
    severity: Severity
    category: AlertCategory
    source: str
    fields: dict[str, Any] = Field(default_factory=dict)
    escalation_level: int = 0
    created_at: datetime

"""Decision Synthesizer: signal + system context -> ranked actions.

Candidates come from four independent paths:

1. Signal path: templates mapped to the signal's metric in the catalog
2. Health path: restart on critical overall health or critical components
3. Performance path: slow responses or high error rate in context metrics
4. Resource path: CPU or memory pressure

Each candidate is scored (confidence, risk, priority), filtered through
the safety gate, sorted by priority then confidence, deduplicated on
``(category, target_resource)`` and capped at ``max_concurrent_actions``.
``synthesize_many`` does this once for all the signals of a decision
cycle, so the cap and dedup hold per cycle rather than per signal.

A failure while evaluating one template is logged and that candidate is
skipped. An unknown template id in the metric map is a catalog invariant
violation and raises ``CatalogError``.
"""

from __future__ import annotations

import itertools
import logging
import uuid
from collections.abc import Iterator
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from signal_governor.catalog.loader import ActionCatalog
from signal_governor.decision.learner import OutcomeLearner
from signal_governor.models import (
    PRIORITY_ORDER,
    ActionTemplate,
    DecisionAction,
    HealthStatus,
    Priority,
    RiskLevel,
    Severity,
    Signal,
    SystemContext,
)

logger = logging.getLogger(__name__)

SLOW_RESPONSE_MS = 2000.0
HIGH_ERROR_RATE = 0.05
CPU_PRESSURE = 0.8
MEMORY_PRESSURE = 0.9
BUSY_ACTION_COUNT = 5

SEVERITY_ORDER: dict[Severity, int] = {
    Severity.LOW: 1,
    Severity.MEDIUM: 2,
    Severity.HIGH: 3,
    Severity.CRITICAL: 4,
}


class SafetyThresholds(BaseModel):
    """Safety limits applied to synthesis and automatic execution."""

    min_confidence: float = Field(0.6, ge=0.0, le=1.0)
    max_concurrent_actions: int = Field(3, ge=1)
    max_resource_impact: float = Field(0.5, ge=0.0)
    """Largest |cost impact| / 100 allowed without human approval."""

    min_time_between_actions: float = Field(300.0, ge=0)
    max_actions_per_hour: int = Field(10, ge=1)


def risk_level(score: float) -> RiskLevel:
    if score < 0.4:
        return RiskLevel.LOW
    if score < 0.7:
        return RiskLevel.MEDIUM
    return RiskLevel.HIGH


class DecisionSynthesizer:
    """Turns observations into a short, safe, ranked list of actions."""

    def __init__(
        self,
        catalog: ActionCatalog,
        learner: OutcomeLearner,
        thresholds: SafetyThresholds | None = None,
    ) -> None:
        self._catalog = catalog
        self._learner = learner
        self._thresholds = thresholds or SafetyThresholds()

    @property
    def thresholds(self) -> SafetyThresholds:
        return self._thresholds

    def synthesize(
        self,
        signal: Signal | None,
        context: SystemContext,
    ) -> list[DecisionAction]:
        return self.synthesize_many([signal] if signal is not None else [], context)

    def synthesize_many(
        self,
        signals: list[Signal],
        context: SystemContext,
    ) -> list[DecisionAction]:
        """Pool candidates for every signal of a cycle, then rank once.

        The context-only paths run a single time, scored against the most
        severe signal. Dedup and the concurrency cap apply to the pooled set.
        """
        policy = self._learner.policy
        candidates: list[DecisionAction] = []

        for template, overrides, source in self._candidates(signals, context):
            try:
                action = self._instantiate(template, overrides, source, context)
            except Exception:
                logger.exception("Failed to evaluate template '%s'; skipping", template.id)
                continue
            reason = self._rejection(action, policy.min_confidence)
            if reason is not None:
                logger.debug("Rejected %s: %s", template.id, reason)
                continue
            candidates.append(action)

        candidates.sort(
            key=lambda a: (PRIORITY_ORDER[a.priority], a.confidence), reverse=True,
        )

        seen: set[tuple[str, str]] = set()
        selected: list[DecisionAction] = []
        for action in candidates:
            key = (str(action.category), action.target_resource)
            if key in seen:
                continue
            seen.add(key)
            selected.append(action)

        return selected[: self._thresholds.max_concurrent_actions]

    # --- Candidate paths ---

    def _candidates(
        self, signals: list[Signal], context: SystemContext,
    ) -> Iterator[tuple[ActionTemplate, dict[str, Any], Signal | None]]:
        for signal in signals:
            for template_id in self._catalog.templates_for_metric(signal.metric):
                template = self._catalog.get_or_raise(template_id)
                overrides = {
                    k: v for k, v in signal.context.items() if k in template.parameters
                }
                yield template, overrides, signal

        lead = max(
            signals, key=lambda s: (SEVERITY_ORDER[s.severity], s.confidence), default=None,
        )
        for template, overrides in itertools.chain(
            self._health_candidates(context),
            self._performance_candidates(context),
            self._resource_candidates(context),
        ):
            yield template, overrides, lead

    def _health_candidates(
        self, context: SystemContext,
    ) -> Iterator[tuple[ActionTemplate, dict[str, Any]]]:
        template = self._catalog.get("restart_service")
        if template is None:
            return
        if context.health == HealthStatus.CRITICAL:
            yield template, {}
        for component, status in sorted(context.components.items()):
            if status == HealthStatus.CRITICAL:
                yield template, {"service": component}

    def _performance_candidates(
        self, context: SystemContext,
    ) -> Iterator[tuple[ActionTemplate, dict[str, Any]]]:
        if context.metrics.get("response_time_ms", 0.0) > SLOW_RESPONSE_MS:
            template = self._catalog.get("optimize_query")
            if template is not None:
                yield template, {}
        if context.metrics.get("error_rate", 0.0) > HIGH_ERROR_RATE:
            template = self._catalog.get("enable_circuit_breaker")
            if template is not None:
                yield template, {}

    def _resource_candidates(
        self, context: SystemContext,
    ) -> Iterator[tuple[ActionTemplate, dict[str, Any]]]:
        template = self._catalog.get("scale_resources")
        if template is None:
            return
        if context.cpu > CPU_PRESSURE:
            yield template, {"resource_type": "cpu"}
        if context.memory > MEMORY_PRESSURE:
            yield template, {"resource_type": "memory"}

    # --- Scoring ---

    def _instantiate(
        self,
        template: ActionTemplate,
        overrides: dict[str, Any],
        signal: Signal | None,
        context: SystemContext,
    ) -> DecisionAction:
        score = self.risk_score(template, context)
        return DecisionAction(
            id=f"dec-{uuid.uuid4().hex[:12]}",
            template_id=template.id,
            category=template.category,
            description=template.description,
            confidence=self.confidence(template, signal, context),
            risk_score=score,
            risk_level=risk_level(score),
            priority=self.priority(signal, context),
            parameters={**template.parameters, **overrides},
            estimated_impact=template.estimated_impact,
            rollback_plan=template.rollback_plan,
            execution_time_seconds=template.execution_time_seconds,
            requires_human_approval=self._learner.requires_approval(template),
            source_metric=signal.metric if signal is not None else None,
            created_at=datetime.now(tz=UTC),
        )

    def confidence(
        self,
        template: ActionTemplate,
        signal: Signal | None,
        context: SystemContext,
    ) -> float:
        value = 0.5
        if signal is not None:
            value += signal.confidence * 0.3
            if signal.severity == Severity.CRITICAL:
                value += 0.2
            elif signal.severity == Severity.HIGH:
                value += 0.1

        if context.health == HealthStatus.CRITICAL:
            value += 0.2
        elif context.health == HealthStatus.DEGRADED:
            value += 0.1

        value += self._learner.success_rate(template.id) * 0.2

        if context.cpu > CPU_PRESSURE:
            value += 0.1
        if context.memory > MEMORY_PRESSURE:
            value += 0.1

        return max(0.0, min(1.0, value))

    @staticmethod
    def risk_score(template: ActionTemplate, context: SystemContext) -> float:
        score = template.base_risk
        if context.peak_hours:
            score += 0.2
        if context.health == HealthStatus.CRITICAL:
            score += 0.3
        if context.recent_action_count > BUSY_ACTION_COUNT:
            score += 0.1
        return score

    @staticmethod
    def priority(signal: Signal | None, context: SystemContext) -> Priority:
        severity = signal.severity if signal is not None else None
        if severity == Severity.CRITICAL or context.health == HealthStatus.CRITICAL:
            return Priority.CRITICAL
        if severity == Severity.HIGH or context.health == HealthStatus.DEGRADED:
            return Priority.HIGH
        if severity == Severity.MEDIUM:
            return Priority.MEDIUM
        return Priority.LOW

    def _rejection(self, action: DecisionAction, min_confidence: float) -> str | None:
        if action.confidence < min_confidence:
            return f"confidence {action.confidence:.2f} below {min_confidence:.2f}"
        if action.risk_level == RiskLevel.HIGH and not action.requires_human_approval:
            return "high risk without human approval"
        cost = abs(action.estimated_impact.cost) / 100
        if cost > self._thresholds.max_resource_impact and not action.requires_human_approval:
            return (
                f"resource impact {cost:.2f} exceeds "
                f"{self._thresholds.max_resource_impact:.2f}"
            )
        return None

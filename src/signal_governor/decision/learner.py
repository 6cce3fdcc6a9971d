"""Outcome Learner: success rates and monotone safety ratchets.

Every executed action produces exactly one Outcome, recorded here. A
learning pass over the most recent ``window_size`` outcomes can tighten
the policy in two ways, and never loosens it:

- When enough high-confidence outcomes succeed, ``min_confidence`` is
  raised by ``confidence_step`` up to ``max_min_confidence``.
- A template that failed more than ``failure_threshold`` times in the
  window is forced to require human approval.

Tightening replaces the ``PolicySnapshot`` wholesale with a new version.
Templates themselves are never modified. ``reset_template`` and
``reset_thresholds`` are the only ways back.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import Counter, deque
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field

from signal_governor.models import (
    ActionTemplate,
    DecisionAction,
    LearningInsight,
    Outcome,
    PolicySnapshot,
)

logger = logging.getLogger(__name__)

HIGH_CONFIDENCE = 0.8
NO_HISTORY_RATE = 0.5


class LearningConfig(BaseModel):
    """Tuning for the learning pass."""

    window_size: int = Field(100, ge=1)
    """Number of most recent outcomes a learning pass considers."""

    min_samples: int = Field(10, ge=1)
    """High-confidence outcomes needed before min_confidence can move."""

    pattern_threshold: float = Field(0.8, ge=0.0, le=1.0)
    """Success rate of high-confidence outcomes that triggers a raise."""

    confidence_step: float = Field(0.05, gt=0.0, le=1.0)
    max_min_confidence: float = Field(0.8, ge=0.0, le=1.0)

    failure_threshold: int = Field(3, ge=0)
    """Failures in the window above which a template needs approval."""

    history_size: int = Field(1000, ge=1)
    """Outcomes kept for success rates and statistics."""


class OutcomeLearner:
    """Thread-safe outcome history plus the current learned policy."""

    def __init__(
        self,
        config: LearningConfig | None = None,
        initial_min_confidence: float = 0.6,
    ) -> None:
        self._config = config or LearningConfig()
        self._initial_min_confidence = initial_min_confidence
        self._lock = threading.Lock()
        self._history: deque[tuple[DecisionAction, Outcome]] = deque(
            maxlen=max(self._config.history_size, self._config.window_size)
        )
        self._policy = PolicySnapshot(min_confidence=initial_min_confidence)

    @property
    def config(self) -> LearningConfig:
        return self._config

    @property
    def policy(self) -> PolicySnapshot:
        """The current policy snapshot (immutable)."""
        with self._lock:
            return self._policy

    def record(self, action: DecisionAction, outcome: Outcome) -> None:
        with self._lock:
            self._history.append((action, outcome))

    def record_impact(self, action_id: str, impact: dict[str, float]) -> Outcome | None:
        """Attach measured impact to a recorded outcome once it has settled.

        Returns the updated outcome, or None if *action_id* is not in history.
        """
        with self._lock:
            for i, (action, outcome) in enumerate(self._history):
                if outcome.action_id == action_id:
                    updated = outcome.model_copy(
                        update={"impact": {k: float(v) for k, v in impact.items()}}
                    )
                    self._history[i] = (action, updated)
                    return updated
        return None

    def outcomes(self) -> list[Outcome]:
        with self._lock:
            return [o for _, o in self._history]

    def success_rate(self, template_id: str) -> float:
        """Fraction of recorded outcomes for *template_id* that succeeded."""
        with self._lock:
            results = [o.success for _, o in self._history if o.template_id == template_id]
        if not results:
            return NO_HISTORY_RATE
        return sum(results) / len(results)

    def requires_approval(self, template: ActionTemplate) -> bool:
        """Effective approval flag: a learned override wins over the template."""
        return self.policy.approval_overrides.get(
            template.id, template.requires_human_approval
        )

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def learn(self, outcomes: list[Outcome] | None = None) -> list[LearningInsight]:
        """Run one learning pass and tighten the policy where warranted.

        Uses the last ``window_size`` recorded outcomes unless *outcomes*
        is given.
        """
        cfg = self._config
        with self._lock:
            if outcomes is None:
                window = [o for _, o in self._history][-cfg.window_size:]
            else:
                window = list(outcomes)[-cfg.window_size:]

            insights: list[LearningInsight] = []
            policy = self._policy
            min_confidence = policy.min_confidence
            overrides = dict(policy.approval_overrides)

            high = [o for o in window if o.confidence > HIGH_CONFIDENCE]
            if len(high) >= cfg.min_samples:
                rate = sum(o.success for o in high) / len(high)
                raised = min(min_confidence + cfg.confidence_step, cfg.max_min_confidence)
                if rate >= cfg.pattern_threshold and raised > min_confidence:
                    insights.append(
                        _insight(
                            pattern="high_confidence_success",
                            confidence=rate,
                            recommendation=(
                                f"Raise minimum confidence from {min_confidence:.2f} "
                                f"to {raised:.2f}"
                            ),
                            evidence=[o.action_id for o in high],
                        )
                    )
                    min_confidence = round(raised, 6)

            failures = Counter(o.template_id for o in window if not o.success)
            for template_id, count in sorted(failures.items()):
                if count > cfg.failure_threshold and not overrides.get(template_id):
                    overrides[template_id] = True
                    insights.append(
                        _insight(
                            pattern="repeated_failure",
                            confidence=min(1.0, count / max(1, len(window))),
                            recommendation=(
                                f"Require human approval for '{template_id}' "
                                f"after {count} failures"
                            ),
                            template_id=template_id,
                            evidence=[
                                o.action_id for o in window
                                if o.template_id == template_id and not o.success
                            ],
                        )
                    )

            if insights:
                self._policy = PolicySnapshot(
                    version=policy.version + 1,
                    min_confidence=min_confidence,
                    approval_overrides=overrides,
                )

        for insight in insights:
            logger.info("Learning insight (%s): %s", insight.pattern, insight.recommendation)
        return insights

    # ------------------------------------------------------------------
    # External resets
    # ------------------------------------------------------------------

    def reset_template(self, template_id: str) -> bool:
        """Drop a learned approval override. Returns False if there was none."""
        with self._lock:
            overrides = dict(self._policy.approval_overrides)
            if overrides.pop(template_id, None) is None:
                return False
            self._policy = self._policy.model_copy(
                update={"version": self._policy.version + 1, "approval_overrides": overrides}
            )
        logger.warning("Approval override for '%s' reset", template_id)
        return True

    def reset_thresholds(self) -> None:
        """Return min_confidence to its configured starting value."""
        with self._lock:
            self._policy = self._policy.model_copy(
                update={
                    "version": self._policy.version + 1,
                    "min_confidence": self._initial_min_confidence,
                }
            )
        logger.warning("Minimum confidence reset to %.2f", self._initial_min_confidence)

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def statistics(self) -> dict[str, Any]:
        with self._lock:
            history = list(self._history)
            policy = self._policy
        total = len(history)
        successes = sum(1 for _, o in history if o.success)
        return {
            "total_decisions": total,
            "successful_decisions": successes,
            "failed_decisions": total - successes,
            "decisions_by_category": dict(Counter(str(a.category) for a, _ in history)),
            "average_confidence": (
                sum(o.confidence for _, o in history) / total if total else 0.0
            ),
            "average_execution_time_ms": (
                sum(o.execution_time_ms for _, o in history) / total if total else 0.0
            ),
            "measured_outcomes": sum(1 for _, o in history if o.impact),
            "policy_version": policy.version,
            "min_confidence": policy.min_confidence,
            "approval_overrides": sorted(policy.approval_overrides),
        }


def _insight(
    pattern: str,
    confidence: float,
    recommendation: str,
    evidence: list[str],
    template_id: str | None = None,
) -> LearningInsight:
    return LearningInsight(
        id=f"ins-{uuid.uuid4().hex[:12]}",
        pattern=pattern,
        confidence=confidence,
        recommendation=recommendation,
        template_id=template_id,
        evidence=evidence,
        timestamp=datetime.now(tz=UTC),
    )

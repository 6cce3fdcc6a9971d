"""Governor: the single public entry point.

Wires every component (catalog, synthesizer, learner, rate limiter,
executor, alert dispatcher, scheduler, store) from one configuration and
drives the decision cycle.

Usage::

    from signal_governor import Governor, load_config

    governor = Governor(load_config())
    governor.submit_signal(signal)
    report = governor.run_cycle(SystemContext(health="degraded"))

    # or let the scheduler drive it
    governor.start(context_provider=read_system_context)
"""

from __future__ import annotations

import logging
import threading
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from signal_governor.alerts.channels import ChannelAdapter, build_adapters
from signal_governor.alerts.delivery import ChannelDelivery
from signal_governor.alerts.dispatcher import AlertDispatcher
from signal_governor.alerts.escalation import EscalationClock
from signal_governor.alerts.history import AlertHistory
from signal_governor.catalog.loader import ActionCatalog, default_catalog, load_catalog
from signal_governor.config import ConfigError, GovernorConfig
from signal_governor.decision.executor import (
    ActionExecutor,
    ActionHandler,
    SafetyViolationError,
    dry_run_handlers,
)
from signal_governor.decision.learner import LearningConfig, OutcomeLearner
from signal_governor.decision.ratelimit import ActionRateLimiter
from signal_governor.decision.synthesizer import DecisionSynthesizer, SafetyThresholds
from signal_governor.models import (
    ActionCategory,
    ChannelDefinition,
    ChannelType,
    DecisionAction,
    EscalationPolicy,
    LearningInsight,
    Outcome,
    Severity,
    Signal,
    SystemContext,
    ThrottleRule,
)
from signal_governor.routing.table import RoutingTable
from signal_governor.scheduler import TaskScheduler
from signal_governor.store import JsonlRecordStore, RecordStore, safe_append
from signal_governor.throttle.ledger import ThrottleLedger, default_throttle_rules

logger = logging.getLogger(__name__)

DECISION_TASK = "decision-cycle"
LEARNING_TASK = "learning-pass"


class CycleReport(BaseModel):
    """What one decision cycle proposed and did."""

    started_at: datetime
    signals: int = 0
    proposed: list[DecisionAction] = Field(default_factory=list)
    outcomes: list[Outcome] = Field(default_factory=list)
    deferred: list[str] = Field(default_factory=list)
    rate_limited: dict[str, str] = Field(default_factory=dict)
    refused: list[str] = Field(default_factory=list)
    alerts: list[str] = Field(default_factory=list)


class Governor:
    """Composes the decision pipeline and the alert pipeline."""

    def __init__(
        self,
        config: GovernorConfig | dict[str, Any] | None = None,
        catalog: ActionCatalog | None = None,
        store: RecordStore | None = None,
        handlers: dict[ActionCategory, ActionHandler] | None = None,
        adapters: dict[ChannelType, ChannelAdapter] | None = None,
        clock: Callable[[], float] | None = None,
    ) -> None:
        if config is None:
            config = GovernorConfig()
        elif isinstance(config, dict):
            try:
                config = GovernorConfig(**config)
            except TypeError as e:
                raise ConfigError(f"Invalid governor config: {e}") from e
        self._config = config

        try:
            thresholds = SafetyThresholds(**(config.safety or {}))
            learning = LearningConfig(**(config.learning or {}))
            throttle_rules = (
                [ThrottleRule(**r) for r in config.throttles]
                if config.throttles is not None
                else default_throttle_rules()
            )
            channels = [ChannelDefinition(**c) for c in config.channels]
            default_policy = (
                EscalationPolicy(**config.escalation) if config.escalation else None
            )
        except (ValidationError, TypeError) as e:
            raise ConfigError(f"Invalid governor config: {e}") from e

        if catalog is None:
            catalog = load_catalog(config.catalog) if config.catalog else default_catalog()
        self._catalog = catalog

        if store is None and config.store:
            store = JsonlRecordStore(config.store)
        self._store = store

        self._scheduler = TaskScheduler(_clock=clock)
        self._learner = OutcomeLearner(learning, initial_min_confidence=thresholds.min_confidence)
        self._synthesizer = DecisionSynthesizer(catalog, self._learner, thresholds)
        self._limiter = ActionRateLimiter(
            max_actions_per_hour=thresholds.max_actions_per_hour,
            min_time_between_actions=thresholds.min_time_between_actions,
            _clock=clock,
        )
        self._executor = ActionExecutor(handlers if handlers is not None else dry_run_handlers())

        routing = RoutingTable(channels)
        history = AlertHistory()
        self._delivery = ChannelDelivery(
            routing,
            adapters if adapters is not None else build_adapters(config.delivery_timeout_seconds),
            default_timeout=config.delivery_timeout_seconds,
        )
        self._dispatcher = AlertDispatcher(
            throttle=ThrottleLedger(throttle_rules, _clock=clock),
            routing=routing,
            delivery=self._delivery,
            history=history,
            escalation=EscalationClock(self._scheduler, history, self._delivery),
            store=store,
            default_escalation=default_policy,
        )

        self._cycle_lock = threading.Lock()
        self._signals_lock = threading.Lock()
        self._signals: deque[Signal] = deque()

    # --- Components ---

    @property
    def config(self) -> GovernorConfig:
        return self._config

    @property
    def catalog(self) -> ActionCatalog:
        return self._catalog

    @property
    def synthesizer(self) -> DecisionSynthesizer:
        return self._synthesizer

    @property
    def learner(self) -> OutcomeLearner:
        return self._learner

    @property
    def executor(self) -> ActionExecutor:
        return self._executor

    @property
    def rate_limiter(self) -> ActionRateLimiter:
        return self._limiter

    @property
    def dispatcher(self) -> AlertDispatcher:
        return self._dispatcher

    @property
    def scheduler(self) -> TaskScheduler:
        return self._scheduler

    # --- Decision pipeline ---

    def submit_signal(self, signal: Signal) -> None:
        """Queue a signal for the next decision cycle."""
        with self._signals_lock:
            self._signals.append(signal)

    def pending_signals(self) -> int:
        with self._signals_lock:
            return len(self._signals)

    def process_signal(
        self, signal: Signal | None, context: SystemContext,
    ) -> CycleReport:
        """Synthesize and act on one signal (or a context-only pass).

        Waits for a running cycle to finish rather than overlapping it.
        """
        with self._cycle_lock:
            report = CycleReport(started_at=datetime.now(tz=UTC))
            self._process([signal] if signal is not None else [], context, report)
            return report

    def run_cycle(self, context: SystemContext | None = None) -> CycleReport | None:
        """Drain queued signals through the pipeline as one pooled decision.

        Returns None without doing anything if another cycle is running.
        """
        if not self._cycle_lock.acquire(blocking=False):
            logger.info("Decision cycle already running; skipping")
            return None
        try:
            context = context or SystemContext()
            with self._signals_lock:
                signals = list(self._signals)
                self._signals.clear()

            report = CycleReport(started_at=datetime.now(tz=UTC))
            self._process(signals, context, report)
            return report
        finally:
            self._cycle_lock.release()

    def approve(self, action_id: str, approved_by: str) -> Outcome:
        """Execute a deferred action after human approval."""
        action = next(
            (a for a in self._executor.pending_approvals() if a.id == action_id), None,
        )
        outcome = self._executor.approve(action_id, approved_by)
        if action is not None:
            self._after_execution(action, outcome)
        return outcome

    def record_impact(self, action_id: str, impact: dict[str, float]) -> Outcome | None:
        """Attach impact measured after the settling window to an outcome."""
        outcome = self._learner.record_impact(action_id, impact)
        if outcome is None:
            logger.warning("No recorded outcome for action %s; impact dropped", action_id)
            return None
        safe_append(self._store, "impact", outcome)
        return outcome

    def learn(self) -> list[LearningInsight]:
        insights = self._learner.learn()
        for insight in insights:
            safe_append(self._store, "insight", insight)
        return insights

    # --- Lifecycle ---

    def start(
        self,
        context_provider: Callable[[], SystemContext] | None = None,
        poll_interval: float = 1.0,
    ) -> None:
        """Run decision cycles and learning passes on the background scheduler."""
        provider = context_provider or SystemContext
        self._scheduler.every(
            DECISION_TASK,
            self._config.decision_interval_seconds,
            lambda: self.run_cycle(provider()),
        )
        self._scheduler.every(
            LEARNING_TASK, self._config.learning_interval_seconds, self.learn,
        )
        self._scheduler.start(poll_interval=poll_interval)
        logger.info("Governor started")

    def stop(self) -> None:
        self._scheduler.stop()
        self._scheduler.cancel(DECISION_TASK)
        self._scheduler.cancel(LEARNING_TASK)
        logger.info("Governor stopped")

    def close(self) -> None:
        self.stop()
        self._delivery.close()

    # --- Internals ---

    def _process(
        self, signals: list[Signal], context: SystemContext, report: CycleReport,
    ) -> None:
        report.signals += len(signals)

        recent = max(context.recent_action_count, self._limiter.actions_in_last_hour())
        context = context.model_copy(update={"recent_action_count": recent})

        actions = self._synthesizer.synthesize_many(signals, context)
        report.proposed.extend(actions)

        for signal in signals:
            if signal.severity not in (Severity.HIGH, Severity.CRITICAL):
                continue
            suggested = [a.template_id for a in actions if a.source_metric == signal.metric]
            report.alerts.append(self._dispatcher.send_signal_alert(signal, suggested))

        for action in actions:
            safe_append(self._store, "decision", action)

            if action.requires_human_approval:
                self._executor.execute(action)
                report.deferred.append(action.id)
                report.alerts.append(
                    self._dispatcher.send_decision_alert(
                        action,
                        headline="APPROVAL REQUIRED",
                        extra={"status": "pending_approval"},
                    )
                )
                continue

            reason = self._limiter.check(action.template_id)
            if reason is not None:
                logger.info("Skipping %s: %s", action.template_id, reason)
                report.rate_limited[action.id] = reason
                continue

            try:
                outcome = self._executor.execute(action)
            except SafetyViolationError:
                logger.exception("Refused to execute %s", action.id)
                report.refused.append(action.id)
                continue
            if outcome is None:
                continue

            report.outcomes.append(outcome)
            alert_id = self._after_execution(action, outcome)
            if alert_id is not None:
                report.alerts.append(alert_id)

    def _after_execution(self, action: DecisionAction, outcome: Outcome) -> str | None:
        self._limiter.record(action.template_id)
        self._learner.record(action, outcome)
        safe_append(self._store, "outcome", outcome)
        if outcome.success:
            return None
        return self._dispatcher.send_decision_alert(
            action,
            headline="ACTION FAILED",
            severity=Severity.HIGH,
            extra={"errors": list(outcome.errors)},
        )

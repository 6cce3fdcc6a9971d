"""Action Executor: approval deferral, category dispatch, Outcome capture.

Actions flagged ``requires_human_approval`` are parked in a pending map
until ``approve()`` or ``reject()``. Everything else is dispatched to the
``ActionHandler`` registered for its category. A handler's exception is
captured into the Outcome's errors and never propagates; the only error
``execute`` raises is ``SafetyViolationError`` for a high-risk action that
reached it without an approval requirement.
"""

from __future__ import annotations

import logging
import threading
import time
from datetime import UTC, datetime
from typing import Protocol, runtime_checkable

from signal_governor.models import ActionCategory, DecisionAction, Outcome, RiskLevel

logger = logging.getLogger(__name__)


class SafetyViolationError(Exception):
    """Raised when an action bypassed the safety gate."""


class ExecutorError(Exception):
    """Raised for unknown pending approvals."""


@runtime_checkable
class ActionHandler(Protocol):
    """Protocol for action backends. Return True on success."""

    def handle(self, action: DecisionAction) -> bool:
        ...


class DryRunHandler:
    """Handler that logs the action and reports success without side effects."""

    def __init__(self) -> None:
        self.handled: list[DecisionAction] = []

    def handle(self, action: DecisionAction) -> bool:
        self.handled.append(action)
        logger.info(
            "[dry-run] Would execute %s with %s", action.template_id, action.parameters,
        )
        return True


def dry_run_handlers() -> dict[ActionCategory, ActionHandler]:
    handler = DryRunHandler()
    return {category: handler for category in ActionCategory}


class ActionExecutor:
    """Executes decision actions through category handlers."""

    def __init__(self, handlers: dict[ActionCategory, ActionHandler] | None = None) -> None:
        self._handlers: dict[ActionCategory, ActionHandler] = dict(handlers or {})
        self._lock = threading.Lock()
        self._pending: dict[str, DecisionAction] = {}

    def register_handler(self, category: ActionCategory, handler: ActionHandler) -> None:
        self._handlers[category] = handler

    def execute(self, action: DecisionAction) -> Outcome | None:
        """Run *action*, or defer it when it needs approval (returns None)."""
        if action.requires_human_approval:
            with self._lock:
                self._pending[action.id] = action
            logger.info("Action %s (%s) awaiting approval", action.id, action.template_id)
            return None

        if action.risk_level == RiskLevel.HIGH:
            raise SafetyViolationError(
                f"High-risk action {action.id} ({action.template_id}) "
                f"reached execution without an approval requirement"
            )
        return self._run(action)

    def approve(self, action_id: str, approved_by: str) -> Outcome:
        """Execute a deferred action on behalf of *approved_by*."""
        with self._lock:
            action = self._pending.pop(action_id, None)
        if action is None:
            raise ExecutorError(f"No pending action with id {action_id}")
        logger.info("Action %s approved by %s", action_id, approved_by)
        return self._run(action)

    def reject(self, action_id: str, rejected_by: str | None = None) -> DecisionAction:
        with self._lock:
            action = self._pending.pop(action_id, None)
        if action is None:
            raise ExecutorError(f"No pending action with id {action_id}")
        logger.info("Action %s rejected by %s", action_id, rejected_by or "unknown")
        return action

    def pending_approvals(self) -> list[DecisionAction]:
        with self._lock:
            return list(self._pending.values())

    def _run(self, action: DecisionAction) -> Outcome:
        errors: list[str] = []
        success = False
        handler = self._handlers.get(action.category)

        start = time.perf_counter()
        if handler is None:
            errors.append(f"No handler registered for category '{action.category}'")
        else:
            try:
                success = bool(handler.handle(action))
            except Exception as exc:
                logger.exception("Handler failed for action %s", action.id)
                errors.append(f"{type(exc).__name__}: {exc}")
        elapsed_ms = (time.perf_counter() - start) * 1000

        if not success and not errors:
            errors.append("Handler reported failure")

        return Outcome(
            action_id=action.id,
            template_id=action.template_id,
            confidence=action.confidence,
            success=success,
            execution_time_ms=round(elapsed_ms, 2),
            errors=errors,
            timestamp=datetime.now(tz=UTC),
        )

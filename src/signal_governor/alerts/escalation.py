"""Escalation Clock: re-notify unacknowledged critical alerts on a schedule.

Arming an alert schedules step 0 of its escalation policy on the shared
``TaskScheduler`` under the key ``escalation:<alert_id>``. When a step
fires and the alert is still unacknowledged, the step's message goes to
the step's channel, the alert's escalation level is bumped, and the next
step (if any) is scheduled. A failed delivery is logged and the chain
continues. Cancelling is idempotent.
"""

from __future__ import annotations

import logging
import threading

from signal_governor.alerts.delivery import ChannelDelivery
from signal_governor.alerts.history import AlertHistory
from signal_governor.alerts.messages import escalation_message
from signal_governor.models import EscalationPolicy
from signal_governor.scheduler import TaskScheduler

logger = logging.getLogger(__name__)


def _task_key(alert_id: str) -> str:
    return f"escalation:{alert_id}"


class EscalationClock:
    """One logical timer chain per armed alert."""

    def __init__(
        self,
        scheduler: TaskScheduler,
        history: AlertHistory,
        delivery: ChannelDelivery,
    ) -> None:
        self._scheduler = scheduler
        self._history = history
        self._delivery = delivery
        self._lock = threading.Lock()
        self._policies: dict[str, EscalationPolicy] = {}

    def arm(self, alert_id: str, policy: EscalationPolicy) -> bool:
        """Schedule the first escalation step. Returns False if nothing was armed."""
        if not policy.enabled or not policy.steps:
            return False
        with self._lock:
            self._policies[alert_id] = policy
        self._schedule_step(alert_id, 0)
        logger.debug("Escalation armed for alert %s (policy %s)", alert_id, policy.id)
        return True

    def cancel(self, alert_id: str) -> bool:
        """Cancel any pending escalation for an alert. Safe to call repeatedly."""
        with self._lock:
            known = self._policies.pop(alert_id, None) is not None
        cancelled = self._scheduler.cancel(_task_key(alert_id))
        return known or cancelled

    def is_armed(self, alert_id: str) -> bool:
        return self._scheduler.is_scheduled(_task_key(alert_id))

    def armed_alerts(self) -> list[str]:
        with self._lock:
            return sorted(self._policies)

    def fire(self, alert_id: str, step_index: int) -> None:
        """Run one escalation step. Normally invoked by the scheduler."""
        with self._lock:
            policy = self._policies.get(alert_id)
        if policy is None or step_index >= len(policy.steps):
            return

        if self._history.is_quiesced(alert_id):
            self.cancel(alert_id)
            return

        alert = self._history.get(alert_id)
        if alert is None:
            self.cancel(alert_id)
            return

        step = policy.steps[step_index]
        level = alert.escalation_level + 1
        delivered = self._delivery.deliver_one(
            escalation_message(alert, step, level), step.channel_id,
        )
        if not delivered:
            logger.error(
                "Escalation level %d for alert %s could not be delivered to %s",
                level, alert_id, step.channel_id,
            )

        new_level = self._history.escalate(alert_id)
        if new_level is None:
            # Acknowledged or resolved while the step was being delivered
            self.cancel(alert_id)
            return

        logger.warning("Alert %s escalated to level %d", alert_id, new_level)

        if step_index + 1 < len(policy.steps):
            self._schedule_step(alert_id, step_index + 1)
        else:
            with self._lock:
                self._policies.pop(alert_id, None)

    def _schedule_step(self, alert_id: str, step_index: int) -> None:
        with self._lock:
            policy = self._policies.get(alert_id)
        if policy is None:
            return
        delay = policy.steps[step_index].delay_minutes * 60
        self._scheduler.schedule(
            _task_key(alert_id), delay, lambda: self.fire(alert_id, step_index),
        )

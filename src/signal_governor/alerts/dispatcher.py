"""Alert Dispatcher: the single entry point for notifications.

Flow for ``send(alert)``:

1. Throttle check. A suppressed alert is stored with status
   ``suppressed`` and never delivered; it does not use up a slot.
2. Record the send in the throttle ledger.
3. Resolve channels through the routing table and persist the alert.
4. Deliver to every channel in parallel, each bounded by its timeout.
5. Finalize: ``sent`` when every channel succeeded (or there were none),
   otherwise ``failed``. Per-channel results land in ``alert.delivery``.
6. A critical alert that was sent arms the escalation clock.

``acknowledge`` and ``resolve`` cancel any pending escalation.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Any

from signal_governor.alerts.delivery import ChannelDelivery
from signal_governor.alerts.escalation import EscalationClock
from signal_governor.alerts.history import AlertHistory, AlertNotFoundError
from signal_governor.alerts.messages import alert_message, decision_alert, signal_alert
from signal_governor.models import (
    Alert,
    AlertStatus,
    DecisionAction,
    EscalationPolicy,
    Severity,
    Signal,
)
from signal_governor.routing.table import RoutingTable
from signal_governor.store import RecordStore, safe_append
from signal_governor.throttle.ledger import ThrottleLedger

logger = logging.getLogger(__name__)


class AlertDispatcher:
    """Throttles, routes, delivers and tracks alerts."""

    def __init__(
        self,
        throttle: ThrottleLedger,
        routing: RoutingTable,
        delivery: ChannelDelivery,
        history: AlertHistory,
        escalation: EscalationClock,
        store: RecordStore | None = None,
        default_escalation: EscalationPolicy | None = None,
    ) -> None:
        self._throttle = throttle
        self._routing = routing
        self._delivery = delivery
        self._history = history
        self._escalation = escalation
        self._store = store
        self._default_escalation = default_escalation

    @property
    def routing(self) -> RoutingTable:
        return self._routing

    @property
    def throttle(self) -> ThrottleLedger:
        return self._throttle

    @property
    def escalation(self) -> EscalationClock:
        return self._escalation

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    def send(self, alert: Alert) -> str:
        """Throttle, route and deliver an alert. Returns its id."""
        alert = alert.model_copy(deep=True)
        category, severity = str(alert.category), str(alert.severity)

        if self._throttle.should_suppress(category, severity):
            self._history.add(alert)
            stored = self._history.transition(alert.id, AlertStatus.SUPPRESSED)
            self._persist(stored)
            logger.info(
                "Alert %s suppressed by throttle (%s)",
                alert.id, self._throttle.key(category, severity),
            )
            return alert.id

        self._throttle.record(category, severity)
        alert.channels = self._routing.resolve_channels(alert)
        self._history.add(alert)
        self._persist(alert)

        self._deliver(alert.id)
        return alert.id

    def send_signal_alert(
        self, signal: Signal, suggested_actions: list[str] | None = None,
    ) -> str:
        return self.send(signal_alert(signal, suggested_actions))

    def send_decision_alert(
        self,
        action: DecisionAction,
        headline: str = "DECISION",
        severity: Severity | None = None,
        extra: dict[str, Any] | None = None,
    ) -> str:
        return self.send(decision_alert(action, headline, severity, extra))

    def retry(self, alert_id: str) -> Alert:
        """Re-deliver a failed alert to freshly resolved channels."""
        self._history.transition(alert_id, AlertStatus.PENDING)
        alert = self._require(alert_id)
        self._history.update(
            alert_id, channels=self._routing.resolve_channels(alert), delivery={},
        )
        return self._deliver(alert_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def acknowledge(self, alert_id: str, who: str) -> Alert:
        alert = self._history.transition(alert_id, AlertStatus.ACKNOWLEDGED, actor=who)
        self._escalation.cancel(alert_id)
        self._persist(alert)
        logger.info("Alert %s acknowledged by %s", alert_id, who)
        return alert

    def resolve(self, alert_id: str) -> Alert:
        alert = self._history.transition(alert_id, AlertStatus.RESOLVED)
        self._escalation.cancel(alert_id)
        self._persist(alert)
        logger.info("Alert %s resolved", alert_id)
        return alert

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, alert_id: str) -> Alert | None:
        return self._history.get(alert_id)

    def recent(self, limit: int = 50) -> list[Alert]:
        return self._history.recent(limit)

    def statistics(self) -> dict[str, Any]:
        alerts = self._history.all()
        acked = [a for a in alerts if a.acknowledged_at is not None]
        ack_seconds = [
            (a.acknowledged_at - a.created_at).total_seconds()
            for a in acked
            if a.acknowledged_at is not None
        ]
        channel_counts: Counter[str] = Counter()
        for a in alerts:
            channel_counts.update(a.channels)
        return {
            "total": len(alerts),
            "by_status": dict(Counter(str(a.status) for a in alerts)),
            "by_severity": dict(Counter(str(a.severity) for a in alerts)),
            "by_category": dict(Counter(str(a.category) for a in alerts)),
            "by_channel": dict(channel_counts),
            "escalated": sum(1 for a in alerts if a.escalation_level > 0),
            "armed_escalations": len(self._escalation.armed_alerts()),
            "mean_time_to_acknowledge_seconds": (
                sum(ack_seconds) / len(ack_seconds) if ack_seconds else None
            ),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _deliver(self, alert_id: str) -> Alert:
        alert = self._require(alert_id)
        results = self._delivery.deliver(alert_message(alert), alert.channels)
        self._history.update(alert_id, delivery=results)

        status = AlertStatus.SENT if all(results.values()) else AlertStatus.FAILED
        alert = self._history.transition(alert_id, status)
        self._persist(alert)

        if status == AlertStatus.FAILED:
            failed = sorted(cid for cid, ok in results.items() if not ok)
            logger.warning("Alert %s failed on channels: %s", alert_id, ", ".join(failed))
        elif alert.severity == Severity.CRITICAL:
            policy = self._escalation_policy(alert)
            if policy is not None:
                self._escalation.arm(alert_id, policy)
        return alert

    def _escalation_policy(self, alert: Alert) -> EscalationPolicy | None:
        for channel_id in alert.channels:
            channel = self._routing.get_channel(channel_id)
            if channel is not None and channel.escalation_policy is not None:
                return channel.escalation_policy
        return self._default_escalation

    def _require(self, alert_id: str) -> Alert:
        alert = self._history.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(f"Alert not found: {alert_id}")
        return alert

    def _persist(self, alert: Alert) -> None:
        safe_append(self._store, "alert", alert)

"""In-memory alert history and status state machine.

Holds every alert the dispatcher has seen (including suppressed ones)
and is the single place alert status and escalation level change.
Thread-safe via a lock shared by the dispatcher and the escalation clock,
so an acknowledgement and a firing escalation timer can never interleave.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from datetime import UTC, datetime

from signal_governor.models import Alert, AlertStatus

ALLOWED_TRANSITIONS: dict[AlertStatus, frozenset[AlertStatus]] = {
    AlertStatus.PENDING: frozenset(
        {AlertStatus.SENT, AlertStatus.FAILED, AlertStatus.SUPPRESSED}
    ),
    AlertStatus.SENT: frozenset({AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED}),
    AlertStatus.FAILED: frozenset({AlertStatus.PENDING}),
    AlertStatus.ACKNOWLEDGED: frozenset({AlertStatus.RESOLVED}),
    AlertStatus.RESOLVED: frozenset(),
    AlertStatus.SUPPRESSED: frozenset(),
}

QUIESCED = frozenset({AlertStatus.ACKNOWLEDGED, AlertStatus.RESOLVED})


class AlertNotFoundError(Exception):
    """Raised when an alert id is not in the history."""


class AlertStateError(Exception):
    """Raised on a status transition the state machine does not allow."""


class AlertHistory:
    """Ordered, lock-protected map of alert id to Alert."""

    def __init__(self, max_size: int | None = None) -> None:
        self._lock = threading.RLock()
        self._alerts: OrderedDict[str, Alert] = OrderedDict()
        self._max_size = max_size

    def __len__(self) -> int:
        with self._lock:
            return len(self._alerts)

    def add(self, alert: Alert) -> Alert:
        with self._lock:
            self._alerts[alert.id] = alert
            if self._max_size is not None:
                while len(self._alerts) > self._max_size:
                    self._alerts.popitem(last=False)
        return alert.model_copy(deep=True)

    def get(self, alert_id: str) -> Alert | None:
        with self._lock:
            alert = self._alerts.get(alert_id)
            return alert.model_copy(deep=True) if alert is not None else None

    def recent(self, limit: int = 50) -> list[Alert]:
        with self._lock:
            alerts = list(self._alerts.values())[-limit:] if limit > 0 else []
            return [a.model_copy(deep=True) for a in alerts]

    def all(self) -> list[Alert]:
        with self._lock:
            return [a.model_copy(deep=True) for a in self._alerts.values()]

    def update(self, alert_id: str, **fields: object) -> Alert:
        """Set non-status fields on a stored alert."""
        if "status" in fields:
            raise AlertStateError("Use transition() to change alert status")
        with self._lock:
            alert = self._require(alert_id)
            for name, value in fields.items():
                setattr(alert, name, value)
            return alert.model_copy(deep=True)

    def transition(
        self,
        alert_id: str,
        status: AlertStatus,
        *,
        actor: str | None = None,
    ) -> Alert:
        """Move an alert to *status*, enforcing the allowed transitions."""
        with self._lock:
            alert = self._require(alert_id)
            if status not in ALLOWED_TRANSITIONS[alert.status]:
                raise AlertStateError(
                    f"Alert {alert_id} cannot move from {alert.status} to {status}"
                )
            alert.status = status
            now = datetime.now(tz=UTC)
            if status == AlertStatus.ACKNOWLEDGED:
                alert.acknowledged_at = now
                alert.acknowledged_by = actor
            elif status == AlertStatus.RESOLVED:
                alert.resolved_at = now
            return alert.model_copy(deep=True)

    def is_quiesced(self, alert_id: str) -> bool:
        """True once an alert is acknowledged or resolved (or no longer tracked)."""
        with self._lock:
            alert = self._alerts.get(alert_id)
            return alert is None or alert.status in QUIESCED

    def escalate(self, alert_id: str) -> int | None:
        """Increment the escalation level unless the alert is quiesced.

        Returns the new level, or None when the alert was acknowledged or
        resolved in the meantime.
        """
        with self._lock:
            alert = self._alerts.get(alert_id)
            if alert is None or alert.status in QUIESCED:
                return None
            alert.escalation_level += 1
            return alert.escalation_level

    def _require(self, alert_id: str) -> Alert:
        alert = self._alerts.get(alert_id)
        if alert is None:
            raise AlertNotFoundError(f"Alert not found: {alert_id}")
        return alert

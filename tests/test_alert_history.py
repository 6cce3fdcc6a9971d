"""Tests for alert history and the status state machine."""

from __future__ import annotations

import pytest

from signal_governor.alerts.history import AlertHistory, AlertNotFoundError, AlertStateError
from signal_governor.alerts.messages import build_alert
from signal_governor.models import AlertStatus


def _stored(history: AlertHistory, severity: str = "critical") -> str:
    alert = build_alert("t", "m", severity, "system", "test")
    history.add(alert)
    return alert.id


class TestTransitions:
    def test_happy_path(self):
        history = AlertHistory()
        aid = _stored(history)
        history.transition(aid, AlertStatus.SENT)
        acked = history.transition(aid, AlertStatus.ACKNOWLEDGED, actor="alice")
        assert acked.acknowledged_by == "alice"
        assert acked.acknowledged_at is not None
        resolved = history.transition(aid, AlertStatus.RESOLVED)
        assert resolved.resolved_at is not None

    def test_sent_can_resolve_directly(self):
        history = AlertHistory()
        aid = _stored(history)
        history.transition(aid, AlertStatus.SENT)
        assert history.transition(aid, AlertStatus.RESOLVED).status == AlertStatus.RESOLVED

    def test_failed_back_to_pending(self):
        history = AlertHistory()
        aid = _stored(history)
        history.transition(aid, AlertStatus.FAILED)
        assert history.transition(aid, AlertStatus.PENDING).status == AlertStatus.PENDING

    @pytest.mark.parametrize(
        ("path", "target"),
        [
            ([], AlertStatus.ACKNOWLEDGED),
            ([AlertStatus.SENT, AlertStatus.RESOLVED], AlertStatus.ACKNOWLEDGED),
            ([AlertStatus.SUPPRESSED], AlertStatus.SENT),
            ([AlertStatus.FAILED], AlertStatus.ACKNOWLEDGED),
        ],
    )
    def test_invalid_transitions(self, path, target):
        history = AlertHistory()
        aid = _stored(history)
        for status in path:
            history.transition(aid, status)
        with pytest.raises(AlertStateError):
            history.transition(aid, target)

    def test_unknown_alert(self):
        with pytest.raises(AlertNotFoundError):
            AlertHistory().transition("alr-missing", AlertStatus.SENT)

    def test_update_rejects_status(self):
        history = AlertHistory()
        aid = _stored(history)
        with pytest.raises(AlertStateError):
            history.update(aid, status=AlertStatus.SENT)


class TestEscalate:
    def test_increments_until_quiesced(self):
        history = AlertHistory()
        aid = _stored(history)
        history.transition(aid, AlertStatus.SENT)
        assert history.escalate(aid) == 1
        assert history.escalate(aid) == 2
        history.transition(aid, AlertStatus.ACKNOWLEDGED, actor="bob")
        assert history.is_quiesced(aid)
        assert history.escalate(aid) is None
        assert history.get(aid).escalation_level == 2

    def test_missing_alert_is_quiesced(self):
        assert AlertHistory().is_quiesced("alr-missing") is True


class TestStorage:
    def test_returns_copies(self):
        history = AlertHistory()
        aid = _stored(history)
        copy = history.get(aid)
        copy.title = "changed"
        assert history.get(aid).title == "t"

    def test_recent_and_max_size(self):
        history = AlertHistory(max_size=3)
        ids = [_stored(history) for _ in range(5)]
        assert len(history) == 3
        assert [a.id for a in history.recent(2)] == ids[-2:]
        assert history.get(ids[0]) is None

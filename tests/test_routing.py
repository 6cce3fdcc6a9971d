"""Tests for the alert routing table."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from signal_governor.models import (
    Alert,
    ChannelDefinition,
    RoutingCondition,
    RoutingRule,
)
from signal_governor.routing.table import RoutingError, RoutingTable, condition_matches


def _alert(**overrides) -> Alert:
    data = {
        "id": "alr-1",
        "title": "Database down",
        "message": "Primary database unreachable",
        "severity": "critical",
        "category": "system",
        "source": "health-check",
        "metadata": {"service": "db", "latency_ms": 250, "flag": True},
        "created_at": datetime.now(tz=UTC),
    }
    data.update(overrides)
    return Alert(**data)


def _channel(channel_id: str, *conditions: dict, enabled: bool = True, **kwargs) -> ChannelDefinition:
    return ChannelDefinition(
        id=channel_id,
        type="log",
        enabled=enabled,
        routing_rules=[
            RoutingRule(
                id=f"{channel_id}-rule",
                channel_id=kwargs.get("rule_channel", channel_id),
                conditions=[RoutingCondition(**c) for c in conditions],
                enabled=kwargs.get("rule_enabled", True),
            )
        ],
    )


def _cond(field: str, operator: str, value) -> RoutingCondition:
    return RoutingCondition(field=field, operator=operator, value=value)


class TestOperators:
    def test_equals_on_enum_field(self):
        assert condition_matches(_cond("severity", "equals", "critical"), _alert())
        assert not condition_matches(_cond("severity", "equals", "high"), _alert())

    def test_not_equals(self):
        assert condition_matches(_cond("category", "not_equals", "security"), _alert())

    def test_numeric_comparisons(self):
        assert condition_matches(_cond("latency_ms", "greater_than", 200), _alert())
        assert condition_matches(_cond("latency_ms", "less_than", 300), _alert())
        assert condition_matches(_cond("escalation_level", "less_than", 1), _alert())

    def test_numeric_on_string_is_false(self):
        assert not condition_matches(_cond("service", "greater_than", 1), _alert())

    def test_numeric_on_bool_is_false(self):
        assert not condition_matches(_cond("flag", "greater_than", 0), _alert())

    def test_missing_field(self):
        assert not condition_matches(_cond("nope", "greater_than", 0), _alert())
        assert condition_matches(_cond("nope", "equals", None), _alert())

    def test_contains(self):
        assert condition_matches(_cond("message", "contains", "unreachable"), _alert())
        assert not condition_matches(_cond("latency_ms", "contains", "25"), _alert())

    def test_regex(self):
        assert condition_matches(_cond("title", "regex", r"^Database\s"), _alert())
        assert not condition_matches(_cond("title", "regex", r"^Cache"), _alert())

    def test_invalid_regex_is_false(self):
        assert not condition_matches(_cond("title", "regex", "(unclosed"), _alert())


class TestResolveChannels:
    def test_fan_out_to_every_matching_channel(self):
        table = RoutingTable([
            _channel("ops", {"field": "severity", "operator": "equals", "value": "critical"}),
            _channel("db-team", {"field": "service", "operator": "equals", "value": "db"}),
            _channel("security", {"field": "category", "operator": "equals", "value": "security"}),
        ])
        assert table.resolve_channels(_alert()) == ["ops", "db-team"]

    def test_conditions_are_anded(self):
        table = RoutingTable([
            _channel(
                "ops",
                {"field": "severity", "operator": "equals", "value": "critical"},
                {"field": "category", "operator": "equals", "value": "security"},
            ),
        ])
        assert table.resolve_channels(_alert()) == []

    def test_channel_included_once(self):
        channel = ChannelDefinition(
            id="ops",
            type="log",
            routing_rules=[
                RoutingRule(id="a", channel_id="ops"),
                RoutingRule(id="b", channel_id="ops"),
            ],
        )
        assert RoutingTable([channel]).resolve_channels(_alert()) == ["ops"]

    def test_disabled_channel_and_rule_skipped(self):
        table = RoutingTable([
            _channel("off", enabled=False),
            _channel("rule-off", rule_enabled=False),
            _channel("on"),
        ])
        assert table.resolve_channels(_alert()) == ["on"]

    def test_mismatched_rule_channel_skipped(self, caplog):
        table = RoutingTable([_channel("ops", rule_channel="elsewhere")])
        with caplog.at_level("WARNING"):
            assert table.resolve_channels(_alert()) == []
        assert "elsewhere" in caplog.text


class TestChannelManagement:
    def test_add_get_remove(self):
        table = RoutingTable()
        table.add_channel(_channel("ops"))
        assert table.get_channel("ops") is not None
        assert table.remove_channel("ops") is True
        assert table.remove_channel("ops") is False
        assert table.channels == []

    def test_update_channel(self):
        table = RoutingTable([_channel("ops")])
        updated = table.update_channel("ops", enabled=False)
        assert updated.enabled is False
        assert table.resolve_channels(_alert()) == []

    def test_update_unknown(self):
        with pytest.raises(RoutingError):
            RoutingTable().update_channel("nope", enabled=False)

"""Routing Table: maps an alert to the channels that should receive it.

Every enabled channel is checked; within a channel, every enabled rule
is evaluated and the channel is included if any rule's conditions all
match (AND logic within a rule). An alert can fan out to several
channels. An alert that matches nothing resolves to an empty list.
"""

from __future__ import annotations

import logging
import re
import threading
from typing import Any

from signal_governor.models import (
    Alert,
    ChannelDefinition,
    ConditionOperator,
    RoutingCondition,
    RoutingRule,
)

logger = logging.getLogger(__name__)

_ALERT_FIELDS = ("severity", "category", "source", "title", "message", "escalation_level")


class RoutingError(Exception):
    """Raised when a channel operation references an unknown channel."""


class RoutingTable:
    """Registry of channel definitions and their routing rules.

    Thread-safe via a lock on channel mutations.
    """

    def __init__(self, channels: list[ChannelDefinition] | None = None) -> None:
        self._lock = threading.Lock()
        self._channels: dict[str, ChannelDefinition] = {}
        for channel in channels or []:
            self._channels[channel.id] = channel

    @property
    def channels(self) -> list[ChannelDefinition]:
        with self._lock:
            return list(self._channels.values())

    def get_channel(self, channel_id: str) -> ChannelDefinition | None:
        with self._lock:
            return self._channels.get(channel_id)

    def add_channel(self, channel: ChannelDefinition) -> None:
        with self._lock:
            self._channels[channel.id] = channel
        logger.info("Alert channel added: %s (%s)", channel.id, channel.type)

    def remove_channel(self, channel_id: str) -> bool:
        with self._lock:
            removed = self._channels.pop(channel_id, None)
        if removed is not None:
            logger.info("Alert channel removed: %s", channel_id)
        return removed is not None

    def update_channel(self, channel_id: str, **updates: Any) -> ChannelDefinition:
        """Apply field updates to a channel. Raises RoutingError if unknown."""
        with self._lock:
            existing = self._channels.get(channel_id)
            if existing is None:
                raise RoutingError(f"Channel not found: {channel_id}")
            updated = existing.model_copy(update=updates)
            self._channels[channel_id] = updated
        logger.info("Alert channel updated: %s", channel_id)
        return updated

    def resolve_channels(self, alert: Alert) -> list[str]:
        """Return the ids of every channel with a matching enabled rule."""
        resolved: list[str] = []
        for channel in self.channels:
            if not channel.enabled:
                continue
            for rule in channel.routing_rules:
                if not rule.enabled:
                    continue
                if rule.channel_id != channel.id:
                    logger.warning(
                        "Routing rule %s targets channel %s but is attached to %s; skipping",
                        rule.id, rule.channel_id, channel.id,
                    )
                    continue
                if rule_matches(rule, alert):
                    resolved.append(channel.id)
                    break
        return resolved


def rule_matches(rule: RoutingRule, alert: Alert) -> bool:
    """All conditions of a rule must match (AND)."""
    return all(condition_matches(c, alert) for c in rule.conditions)


def condition_matches(condition: RoutingCondition, alert: Alert) -> bool:
    value = _field_value(alert, condition.field)
    expected = condition.value

    match condition.operator:
        case ConditionOperator.EQUALS:
            return value == expected
        case ConditionOperator.NOT_EQUALS:
            return value != expected
        case ConditionOperator.GREATER_THAN:
            return _is_number(value) and _is_number(expected) and value > expected
        case ConditionOperator.LESS_THAN:
            return _is_number(value) and _is_number(expected) and value < expected
        case ConditionOperator.CONTAINS:
            return isinstance(value, str) and str(expected) in value
        case ConditionOperator.REGEX:
            if not isinstance(value, str):
                return False
            try:
                return re.search(str(expected), value) is not None
            except re.error as e:
                logger.warning("Invalid routing regex %r: %s", expected, e)
                return False
    return False


def _field_value(alert: Alert, field: str) -> Any:
    if field in _ALERT_FIELDS:
        value = getattr(alert, field)
        # StrEnum compares equal to its value; keep plain strings for contains/regex
        return str(value) if isinstance(value, str) else value
    return alert.metadata.get(field)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)

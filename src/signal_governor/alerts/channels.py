"""Channel adapters and per-channel message formatters.

An adapter delivers one ``AlertMessage`` to one channel and raises on
failure; the dispatcher treats any exception (including urllib's
``HTTPError`` for non-2xx responses) as a failed delivery for that
channel only.

Built-in adapters:
- SlackChannel: POST to a Slack incoming webhook (stdlib only)
- WebhookChannel: POST the message as JSON to a URL (stdlib only)
- PagerDutyChannel: POST an Events API v2 trigger (stdlib only)
- LogChannel: write the message to the ``signal_governor.alerts`` logger

Custom adapters just need a ``deliver(message, channel) -> None`` method.
"""

from __future__ import annotations

import json
import logging
import urllib.request
from datetime import UTC, datetime
from typing import Any, Protocol, runtime_checkable

from signal_governor.models import AlertMessage, ChannelDefinition, ChannelType

logger = logging.getLogger(__name__)

PAGERDUTY_EVENTS_URL = "https://events.pagerduty.com/v2/enqueue"

SEVERITY_COLORS: dict[str, str] = {
    "low": "#36a64f",
    "medium": "#ff9500",
    "high": "#ff0000",
    "critical": "#8b0000",
}


class ChannelConfigError(Exception):
    """Raised when a channel is missing required settings."""


@runtime_checkable
class ChannelAdapter(Protocol):
    """Protocol for channel delivery backends."""

    def deliver(self, message: AlertMessage, channel: ChannelDefinition) -> None:
        """Deliver a message to the channel. Raise on failure."""
        ...


# --- Formatters ---


def format_slack(message: AlertMessage, channel: ChannelDefinition) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "text": message.title,
        "attachments": [
            {
                "color": SEVERITY_COLORS.get(str(message.severity), "#36a64f"),
                "fields": [
                    {"title": "Message", "value": message.body, "short": False},
                    *[
                        {"title": str(k).replace("_", " ").title(), "value": str(v), "short": True}
                        for k, v in message.fields.items()
                    ],
                ],
                "footer": channel.settings.get("footer", "Signal Governor"),
                "ts": int(message.created_at.timestamp()),
            }
        ],
    }
    for key in ("channel", "username", "icon_emoji"):
        if channel.settings.get(key):
            payload[key] = channel.settings[key]
    return payload


def format_webhook(message: AlertMessage, channel: ChannelDefinition) -> dict[str, Any]:
    return {
        "type": "alert",
        "channel_id": channel.id,
        "message": message.model_dump(mode="json"),
        "delivered_at": datetime.now(tz=UTC).isoformat(),
    }


def format_pagerduty(message: AlertMessage, channel: ChannelDefinition) -> dict[str, Any]:
    severity = str(message.severity)
    return {
        "routing_key": channel.settings.get("integration_key", ""),
        "event_action": "trigger",
        "dedup_key": message.alert_id,
        "payload": {
            "summary": message.title,
            "source": message.source,
            # PagerDuty has no "high"; map it to "error"
            "severity": {"low": "info", "medium": "warning", "high": "error"}.get(
                severity, "critical"
            ),
            "custom_details": {
                "message": message.body,
                "category": str(message.category),
                "escalation_level": message.escalation_level,
                **message.fields,
            },
        },
    }


# --- Adapters ---


def _post_json(url: str, payload: dict[str, Any], headers: dict[str, str], timeout: float) -> None:
    body = json.dumps(payload, sort_keys=True, default=str).encode("utf-8")
    req = urllib.request.Request(
        url,
        data=body,
        headers={"Content-Type": "application/json", **headers},
        method="POST",
    )
    urllib.request.urlopen(req, timeout=timeout)  # noqa: S310


class SlackChannel:
    """Deliver messages to Slack via incoming webhook.

    Requires ``webhook_url`` in the channel settings.
    """

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout

    def deliver(self, message: AlertMessage, channel: ChannelDefinition) -> None:
        url = channel.settings.get("webhook_url")
        if not url:
            raise ChannelConfigError(f"Slack webhook URL not configured for {channel.id}")
        _post_json(url, format_slack(message, channel), {}, self._timeout)


class WebhookChannel:
    """POST messages as JSON to ``settings.url`` with optional ``settings.headers``."""

    def __init__(self, timeout: float = 10.0) -> None:
        self._timeout = timeout

    def deliver(self, message: AlertMessage, channel: ChannelDefinition) -> None:
        url = channel.settings.get("url")
        if not url:
            raise ChannelConfigError(f"Webhook URL not configured for {channel.id}")
        headers = channel.settings.get("headers") or {}
        _post_json(url, format_webhook(message, channel), headers, self._timeout)


class PagerDutyChannel:
    """Trigger a PagerDuty incident keyed by alert id.

    Requires ``integration_key`` in the channel settings.
    """

    def __init__(self, timeout: float = 10.0, url: str = PAGERDUTY_EVENTS_URL) -> None:
        self._timeout = timeout
        self._url = url

    def deliver(self, message: AlertMessage, channel: ChannelDefinition) -> None:
        if not channel.settings.get("integration_key"):
            raise ChannelConfigError(
                f"PagerDuty integration key not configured for {channel.id}"
            )
        _post_json(self._url, format_pagerduty(message, channel), {}, self._timeout)


class LogChannel:
    """Write messages to the logging system. Useful for email/SMS stand-ins and tests."""

    def __init__(self, level: int = logging.WARNING) -> None:
        self._level = level

    def deliver(self, message: AlertMessage, channel: ChannelDefinition) -> None:
        logger.log(
            self._level,
            "[%s] %s (%s/%s): %s",
            channel.id, message.title, message.severity, message.category, message.body,
        )


def build_adapters(timeout: float = 10.0) -> dict[ChannelType, ChannelAdapter]:
    """Default adapter per channel type."""
    return {
        ChannelType.SLACK: SlackChannel(timeout=timeout),
        ChannelType.WEBHOOK: WebhookChannel(timeout=timeout),
        ChannelType.PAGERDUTY: PagerDutyChannel(timeout=timeout),
        ChannelType.LOG: LogChannel(),
    }

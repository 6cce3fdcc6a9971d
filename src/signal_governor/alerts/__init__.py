"""Alert dispatch: throttling, routing, parallel delivery and escalation.

Channels: SlackChannel, WebhookChannel, PagerDutyChannel, LogChannel.
"""

from signal_governor.alerts.channels import (
    ChannelAdapter,
    LogChannel,
    PagerDutyChannel,
    SlackChannel,
    WebhookChannel,
)
from signal_governor.alerts.delivery import ChannelDelivery
from signal_governor.alerts.dispatcher import AlertDispatcher
from signal_governor.alerts.escalation import EscalationClock
from signal_governor.alerts.history import AlertHistory, AlertNotFoundError, AlertStateError

__all__ = [
    "AlertDispatcher",
    "AlertHistory",
    "AlertNotFoundError",
    "AlertStateError",
    "ChannelAdapter",
    "ChannelDelivery",
    "EscalationClock",
    "LogChannel",
    "PagerDutyChannel",
    "SlackChannel",
    "WebhookChannel",
]

"""Parallel, timeout-bounded delivery of messages to channels.

Every adapter call runs on its own daemon thread and results are gathered
before returning so the caller can finalize alert status. A channel that
raises or exceeds its timeout counts as a failure for that channel only.
A timed-out call keeps running in the background and holds one of its
channel's in-flight slots until it returns; once a channel has
``max_in_flight`` calls outstanding, further deliveries to it fail
immediately instead of queueing behind the hung ones. Other channels are
never affected.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError

from signal_governor.alerts.channels import ChannelAdapter
from signal_governor.models import AlertMessage, ChannelDefinition, ChannelType
from signal_governor.routing.table import RoutingTable

logger = logging.getLogger(__name__)


class ChannelDelivery:
    """Resolves channel ids to definitions and adapters, then delivers."""

    def __init__(
        self,
        routing: RoutingTable,
        adapters: dict[ChannelType, ChannelAdapter],
        default_timeout: float = 10.0,
        max_in_flight: int = 2,
    ) -> None:
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be >= 1")
        self._routing = routing
        self._adapters = dict(adapters)
        self._default_timeout = default_timeout
        self._max_in_flight = max_in_flight
        self._in_flight: dict[str, int] = {}
        self._lock = threading.Lock()
        self._closed = False

    def set_adapter(self, channel_type: ChannelType, adapter: ChannelAdapter) -> None:
        self._adapters[channel_type] = adapter

    def deliver(self, message: AlertMessage, channel_ids: list[str]) -> dict[str, bool]:
        """Deliver *message* to every channel concurrently.

        Returns a map of channel id to success.
        """
        results: dict[str, bool] = {}
        pending: list[tuple[str, float, Future[None]]] = []

        for channel_id in dict.fromkeys(channel_ids):
            target = self._resolve(channel_id)
            if target is None:
                results[channel_id] = False
                continue
            channel, adapter = target
            future = self._start(message, channel, adapter)
            if future is None:
                results[channel_id] = False
                continue
            timeout = channel.timeout_seconds or self._default_timeout
            pending.append((channel_id, timeout, future))

        started = time.monotonic()
        for channel_id, timeout, future in pending:
            remaining = max(0.0, timeout - (time.monotonic() - started))
            try:
                future.result(timeout=remaining)
                results[channel_id] = True
                logger.debug("Alert %s delivered to %s", message.alert_id, channel_id)
            except FutureTimeoutError:
                results[channel_id] = False
                logger.warning(
                    "Delivery of alert %s to %s timed out after %.1fs",
                    message.alert_id, channel_id, timeout,
                )
            except Exception:
                results[channel_id] = False
                logger.exception(
                    "Failed to deliver alert %s to channel %s", message.alert_id, channel_id,
                )

        return results

    def deliver_one(self, message: AlertMessage, channel_id: str) -> bool:
        return self.deliver(message, [channel_id]).get(channel_id, False)

    def in_flight(self, channel_id: str) -> int:
        """Number of adapter calls to *channel_id* that have not returned yet."""
        with self._lock:
            return self._in_flight.get(channel_id, 0)

    def close(self) -> None:
        """Refuse further deliveries. Calls already running finish on their own."""
        self._closed = True

    # --- Internals ---

    def _start(
        self, message: AlertMessage, channel: ChannelDefinition, adapter: ChannelAdapter,
    ) -> Future[None] | None:
        with self._lock:
            outstanding = self._in_flight.get(channel.id, 0)
            if outstanding >= self._max_in_flight:
                logger.warning(
                    "Channel %s has %d deliveries still outstanding; failing alert %s fast",
                    channel.id, outstanding, message.alert_id,
                )
                return None
            self._in_flight[channel.id] = outstanding + 1

        future: Future[None] = Future()

        def run() -> None:
            try:
                adapter.deliver(message, channel)
            except Exception as e:
                future.set_exception(e)
            else:
                future.set_result(None)
            finally:
                with self._lock:
                    self._in_flight[channel.id] -= 1

        threading.Thread(
            target=run, name=f"signal-governor-delivery-{channel.id}", daemon=True,
        ).start()
        return future

    def _resolve(self, channel_id: str) -> tuple[ChannelDefinition, ChannelAdapter] | None:
        if self._closed:
            logger.warning("Delivery closed; dropping message for channel %s", channel_id)
            return None
        channel = self._routing.get_channel(channel_id)
        if channel is None:
            logger.warning("Unknown channel %s; skipping delivery", channel_id)
            return None
        if not channel.enabled:
            logger.warning("Channel %s is disabled; skipping delivery", channel_id)
            return None
        adapter = self._adapters.get(channel.type)
        if adapter is None:
            logger.warning(
                "No adapter registered for channel type %s (channel %s)",
                channel.type, channel_id,
            )
            return None
        return channel, adapter

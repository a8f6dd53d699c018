"""
Event Dispatcher - decodes inbound frames and routes them to per-kind callbacks.

Inbound frames are size-checked, JSON-decoded and validated into a
KitchenEvent. Anything that fails is dropped with a log line and a metric;
the dispatcher never raises into the connection read loop.

Outbound commands (status updates, kitchen notifications) go through an
injected async sender, normally ConnectionManager.send.

Usage:
    dispatcher = EventDispatcher("rest-1", sender=manager.send)
    unsubscribe = dispatcher.on(EventKind.ORDER_CREATED, handle_created)
    dispatcher.dispatch_raw(frame)
    await dispatcher.update_order_status(order_id, OrderStatus.READY)
"""

from __future__ import annotations

import json
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from shared.config.constants import Commands, EventKind, OrderStatus, VALID_EVENT_KINDS
from shared.config.logging import get_logger
from shared.config.settings import settings
from kitchen_feed.components.core.constants import KitchenConstants
from kitchen_feed.components.events.types import KitchenEvent, parse_event
from kitchen_feed.components.metrics.collector import MetricsCollector

logger = get_logger(__name__)

EventCallback = Callable[[KitchenEvent], None]
CommandSender = Callable[[dict[str, Any]], Awaitable[bool]]


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class EventDispatcher:
    """
    Routes validated kitchen events to registered callbacks.

    Delivery is synchronous and in arrival order. A failing callback is
    logged and the remaining callbacks still run.
    """

    def __init__(
        self,
        restaurant_id: str,
        sender: CommandSender | None = None,
        metrics: MetricsCollector | None = None,
        max_message_size: int | None = None,
    ):
        """
        Args:
            restaurant_id: Restaurant stamped on outbound commands.
            sender: Async callable that writes a command to the transport.
            metrics: Shared collector; a private one is created if None.
            max_message_size: Frames larger than this (bytes) are dropped.
        """
        self._restaurant_id = restaurant_id
        self._sender = sender
        self._metrics = metrics or MetricsCollector()
        self._max_message_size = (
            max_message_size if max_message_size is not None else settings.ws_max_message_size
        )
        self._callbacks: dict[EventKind, list[EventCallback]] = defaultdict(list)

    @property
    def metrics(self) -> MetricsCollector:
        return self._metrics

    def bind_sender(self, sender: CommandSender) -> None:
        """Attach the transport used for outbound commands."""
        self._sender = sender

    # ==========================================================================
    # Registration
    # ==========================================================================

    def on(self, kind: EventKind | str, callback: EventCallback) -> Callable[[], None]:
        """
        Register a callback for one event kind.

        Returns:
            Callable that removes the registration.

        Raises:
            ValueError: If ``kind`` is not a known event kind.
        """
        kind = EventKind(kind)
        self._callbacks[kind].append(callback)
        return lambda: self.off(kind, callback)

    def off(self, kind: EventKind | str, callback: EventCallback) -> None:
        """Remove a callback; unknown registrations are ignored."""
        callbacks = self._callbacks.get(EventKind(kind))
        if callbacks and callback in callbacks:
            callbacks.remove(callback)

    # ==========================================================================
    # Inbound
    # ==========================================================================

    def dispatch_raw(self, raw: str | bytes) -> KitchenEvent | None:
        """
        Decode, validate and deliver one inbound frame.

        Returns:
            The delivered event, or None if the frame was dropped.
        """
        self._metrics.increment_events_received()

        size = len(raw.encode("utf-8", errors="replace")) if isinstance(raw, str) else len(raw)
        if size > self._max_message_size:
            self._metrics.increment_events_oversized()
            logger.warning(
                "Dropping oversized event",
                size=size,
                max_size=self._max_message_size,
            )
            return None

        try:
            data = json.loads(raw)
        except (ValueError, UnicodeDecodeError, RecursionError) as e:
            self._drop(self._metrics.increment_events_invalid_schema(), "invalid JSON", str(e))
            return None

        is_valid, error, event = parse_event(data)
        if not is_valid or event is None:
            kind = self._kind_of(data)
            if kind is not None and kind not in VALID_EVENT_KINDS:
                self._drop(self._metrics.increment_events_unknown_kind(), "unknown kind", kind)
            else:
                self._drop(self._metrics.increment_events_invalid_schema(), "invalid shape", error)
            return None

        self.dispatch(event)
        return event

    def dispatch(self, event: KitchenEvent) -> int:
        """
        Deliver an already-validated event.

        Returns:
            Number of callbacks that completed without raising.
        """
        delivered = 0
        for callback in list(self._callbacks.get(event.kind, ())):
            try:
                callback(event)
                delivered += 1
            except Exception as e:
                self._metrics.increment_callback_errors()
                logger.error(
                    "Event callback failed",
                    kind=event.kind.value,
                    order_id=event.order_id,
                    callback=getattr(callback, "__qualname__", repr(callback)),
                    error=str(e),
                    exc_info=True,
                )
        self._metrics.increment_events_dispatched()
        logger.debug(
            "Event dispatched",
            kind=event.kind.value,
            order_id=event.order_id,
            callbacks=delivered,
        )
        return delivered

    @staticmethod
    def _kind_of(data: Any) -> str | None:
        if not isinstance(data, dict):
            return None
        kind = data.get("kind", data.get("event"))
        return kind if isinstance(kind, str) else None

    @staticmethod
    def _drop(count: int, reason: str, detail: Any) -> None:
        # First drop and every Nth after it
        if count == 1 or count % KitchenConstants.DROP_LOG_INTERVAL == 0:
            logger.warning(
                "Dropping inbound event",
                reason=reason,
                detail=detail,
                dropped_total=count,
            )

    # ==========================================================================
    # Outbound commands
    # ==========================================================================

    async def update_order_status(self, order_id: str, status: OrderStatus | str) -> bool:
        """
        Ask the backend to move an order to ``status``.

        Local state is not touched; the confirming ``order.status.changed``
        event is what updates the queue.

        Returns:
            True if the command was handed to the transport.
        """
        status = OrderStatus(status)
        return await self._send_command(
            {
                "op": Commands.UPDATE_ORDER_STATUS,
                "orderId": order_id,
                "status": status.value,
                "restaurantId": self._restaurant_id,
                "timestamp": _utc_now_iso(),
            },
            order_id=order_id,
        )

    async def send_kitchen_notification(self, message: str, level: str = "info") -> bool:
        """Broadcast a kitchen notification to the restaurant's other screens."""
        return await self._send_command(
            {
                "event": Commands.KITCHEN_NOTIFICATION,
                "data": {
                    "restaurantId": self._restaurant_id,
                    "message": message,
                    "type": level,
                },
                "timestamp": _utc_now_iso(),
            },
        )

    async def _send_command(self, payload: dict[str, Any], **log_context: Any) -> bool:
        command = payload.get("op", payload.get("event"))
        if self._sender is None:
            self._metrics.increment_commands_rejected()
            logger.warning("No transport bound, command not sent", command=command, **log_context)
            return False

        try:
            sent = await self._sender(payload)
        except Exception as e:
            self._metrics.increment_commands_rejected()
            logger.error("Command send failed", command=command, error=str(e), **log_context)
            return False

        if sent:
            self._metrics.increment_commands_sent()
            logger.info("Command sent", command=command, **log_context)
        else:
            self._metrics.increment_commands_rejected()
            logger.warning("Command not sent", command=command, **log_context)
        return bool(sent)

    def get_stats(self) -> dict[str, int]:
        return {
            "callbacks": sum(len(cbs) for cbs in self._callbacks.values()),
            "kinds_registered": sum(1 for cbs in self._callbacks.values() if cbs),
        }

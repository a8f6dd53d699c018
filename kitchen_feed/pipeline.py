"""
Kitchen Pipeline.

Composes the connection, dispatcher, order queue, SLA scheduler and
notification center for one restaurant:

    ConnectionManager -> EventDispatcher -> OrderQueue -> SlaScheduler
                                         -> NotificationCenter

The active order set is written only by the initial fetch and by the
dispatcher callbacks registered here.

Usage:
    async with KitchenPipeline("rest-1") as pipeline:
        pipeline.orders(StatusFilter.PENDING)
        await pipeline.update_order_status(order_id, OrderStatus.PREPARING)
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

from shared.config.constants import (
    Commands,
    EventKind,
    OrderStatus,
    kitchen_channel,
    orders_channel,
)
from shared.config.logging import get_logger, restaurant_id_var
from shared.config.settings import settings
from shared.utils.exceptions import OrderApiError
from kitchen_feed.components.connection.manager import ConnectionManager
from kitchen_feed.components.connection.state import ConnectionState
from kitchen_feed.components.core.constants import HasStats
from kitchen_feed.components.events.dispatcher import EventDispatcher
from kitchen_feed.components.events.types import KitchenEvent
from kitchen_feed.components.metrics.collector import MetricsCollector
from kitchen_feed.components.notifications.center import (
    Notification,
    NotificationCenter,
)
from kitchen_feed.components.notifications.toner import NotificationType
from kitchen_feed.components.orders.client import OrderApiClient
from kitchen_feed.components.orders.models import Order
from kitchen_feed.components.orders.queue import (
    ChangeType,
    OrderQueue,
    QueueChange,
    StatusFilter,
)
from kitchen_feed.components.sla.timer import SlaReading, SlaScheduler, utc_now

logger = get_logger(__name__)

RECONNECT_FAILED_MESSAGE = "Lost connection to the kitchen feed. Refresh to resynchronize."


class KitchenPipeline:
    """
    Programmatic surface of the kitchen feed for one restaurant.

    Collaborators can be injected; anything not passed is built from settings.
    """

    def __init__(
        self,
        restaurant_id: str | None = None,
        *,
        api_client: OrderApiClient | None = None,
        connection: ConnectionManager | None = None,
        dispatcher: EventDispatcher | None = None,
        queue: OrderQueue | None = None,
        sla: SlaScheduler | None = None,
        notifications: NotificationCenter | None = None,
        metrics: MetricsCollector | None = None,
        auto_connect: bool | None = None,
    ):
        restaurant_id = restaurant_id or settings.restaurant_id
        if not restaurant_id:
            raise ValueError("restaurant_id is required")

        self.restaurant_id = restaurant_id
        self.auto_connect = settings.auto_connect if auto_connect is None else auto_connect
        self.metrics = metrics or MetricsCollector()

        self.api_client = api_client or OrderApiClient()
        self.queue = queue or OrderQueue(restaurant_id)
        self.sla = sla or SlaScheduler()
        self.notifications = notifications or NotificationCenter()
        self.dispatcher = dispatcher or EventDispatcher(restaurant_id, metrics=self.metrics)
        self.connection = connection or ConnectionManager(metrics=self.metrics)

        self.connection.set_message_handler(self.dispatcher.dispatch_raw)
        self.dispatcher.bind_sender(self.connection.send)

        self._connected_once = False
        self._unsubscribers: list[Callable[[], None]] = [
            self.queue.subscribe(self._on_queue_change),
            self.dispatcher.on(EventKind.ORDER_CREATED, self._on_order_created),
            self.dispatcher.on(EventKind.ORDER_UPDATED, self._on_order_updated),
            self.dispatcher.on(EventKind.ORDER_STATUS_CHANGED, self._on_status_changed),
            self.dispatcher.on(EventKind.KITCHEN_NOTIFICATION, self._on_kitchen_notification),
            self.connection.on_connected(self._on_connected),
            self.connection.on_reconnect_failed(self._on_reconnect_failed),
        ]

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def start(self) -> None:
        """Load the initial snapshot, start the SLA ticker and connect if configured."""
        restaurant_id_var.set(self.restaurant_id)
        await self.refresh()
        self.sla.start()
        if self.auto_connect:
            await self.connect()

    async def connect(self) -> None:
        await self.connection.connect(self.restaurant_id)

    async def disconnect(self) -> None:
        """Leave the restaurant's channels and close the connection."""
        if self.connection.is_connected:
            await self._send_channel_op(Commands.UNSUBSCRIBE)
        await self.connection.disconnect()

    async def close(self) -> None:
        """Full teardown: connection, ticker, audio output and HTTP client."""
        await self.disconnect()
        await self.sla.stop()
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()
        self.notifications.close()
        await self.api_client.close()
        logger.info("Kitchen pipeline closed", restaurant_id=self.restaurant_id)

    async def __aenter__(self) -> KitchenPipeline:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    async def refresh(self) -> bool:
        """
        Re-fetch the restaurant's orders and reconcile the queue.

        Returns:
            False if the fetch failed; the queue keeps its current contents.
        """
        fetched_at = utc_now()
        try:
            orders = await self.api_client.list_orders(self.restaurant_id)
        except OrderApiError as e:
            self.notifications.notify_error(f"Could not load orders: {e.detail}")
            return False
        self.queue.load(orders, fetched_at=fetched_at)
        return True

    # ==========================================================================
    # Commands
    # ==========================================================================

    async def update_order_status(self, order_id: str, status: OrderStatus | str) -> bool:
        """
        Request a status change. The queue changes only when the backend
        confirms with ``order.status.changed``.
        """
        sent = await self.dispatcher.update_order_status(order_id, status)
        if not sent:
            order = self.queue.get(order_id)
            label = f"order #{order.order_number}" if order else "the order"
            self.notifications.notify_error(f"Could not update {label}")
        return sent

    async def send_kitchen_notification(self, message: str, level: str = "info") -> bool:
        return await self.dispatcher.send_kitchen_notification(message, level)

    # ==========================================================================
    # UI surface
    # ==========================================================================

    @property
    def connection_state(self) -> ConnectionState:
        return self.connection.state

    @property
    def last_error(self) -> BaseException | None:
        return self.connection.last_error

    def orders(self, status_filter: StatusFilter | str = StatusFilter.ALL) -> list[Order]:
        return self.queue.snapshot(status_filter)

    def counts(self) -> dict[str, int]:
        return self.queue.counts()

    def sla_readings(self) -> dict[str, SlaReading]:
        return self.sla.readings()

    def active_notifications(self, now: datetime | None = None) -> list[Notification]:
        return self.notifications.active(now)

    def subscribe_notifications(
        self, listener: Callable[[Notification], None]
    ) -> Callable[[], None]:
        return self.notifications.subscribe(listener)

    def get_stats(self) -> dict[str, Any]:
        components: dict[str, HasStats] = {
            "connection": self.connection,
            "dispatcher": self.dispatcher,
            "sla": self.sla,
            "notifications": self.notifications,
            "metrics": self.metrics,
        }
        stats: dict[str, Any] = {name: c.get_stats() for name, c in components.items()}
        stats["queue"] = self.queue.counts()
        return stats

    # ==========================================================================
    # Connection callbacks
    # ==========================================================================

    async def _on_connected(self) -> None:
        await self._send_channel_op(Commands.SUBSCRIBE)
        if self._connected_once:
            # Events missed while offline are only recoverable from a fresh snapshot
            await self.refresh()
        self._connected_once = True

    def _on_reconnect_failed(self, error: BaseException) -> None:
        logger.error(
            "Kitchen feed offline, queue is serving local data",
            restaurant_id=self.restaurant_id,
            error=str(error),
        )
        self.notifications.notify_error(RECONNECT_FAILED_MESSAGE)

    async def _send_channel_op(self, op: str) -> None:
        for channel in (orders_channel(self.restaurant_id), kitchen_channel(self.restaurant_id)):
            await self.connection.send({"event": op, "data": {"channel": channel}})

    # ==========================================================================
    # Event callbacks
    # ==========================================================================

    def _on_order_created(self, event: KitchenEvent) -> None:
        if event.order is None:
            return
        change = self.queue.apply_created(event.order)
        self._notify_for_change(change)

    def _on_order_updated(self, event: KitchenEvent) -> None:
        if event.patch is None:
            return
        change = self.queue.apply_updated(event.patch)
        self._notify_for_change(change)

    def _on_status_changed(self, event: KitchenEvent) -> None:
        if event.order_id is None or event.status is None:
            return
        change = self.queue.apply_status_changed(event.order_id, event.status, event.patch)
        self._notify_for_change(change)

    def _on_kitchen_notification(self, event: KitchenEvent) -> None:
        message = event.message or ""
        if event.level == "urgent":
            self.notifications.notify_urgent(message, event.order)
        elif event.level == "error":
            self.notifications.notify_error(message)
        elif event.level == "success":
            self.notifications.notify_success(message)
        else:
            self.notifications.show(
                NotificationType.STATUS_UPDATE, "Kitchen", message, order=event.order
            )

    def _notify_for_change(self, change: QueueChange) -> None:
        if change.order is None:
            return
        if change.change is ChangeType.ADDED:
            self.notifications.notify_new_order(change.order)
        elif (
            change.change in (ChangeType.UPDATED, ChangeType.REMOVED)
            and change.previous_status is not None
            and change.previous_status != change.order.status
        ):
            self.notifications.notify_status_update(change.order, change.order.status)

    # ==========================================================================
    # Queue callbacks
    # ==========================================================================

    def _on_queue_change(self, change: QueueChange) -> None:
        if change.change is ChangeType.REMOVED:
            self.sla.untrack(change.order_id)
        elif change.order is not None and change.change in (ChangeType.ADDED, ChangeType.UPDATED):
            self.sla.track(change.order_id, change.order.created_at)

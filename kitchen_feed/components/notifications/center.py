"""
Notification Center.

Explicit registry for user-facing alerts. Components that raise alerts get a
NotificationCenter injected; the UI subscribes to it for as long as it is
mounted.

Every call produces a new entry (no deduplication). Entries expire after a
type-dependent duration: 10s for urgent, 5s for everything else. Sound plays
only when both the entry's ``sound`` flag and the center-wide
``sound_enabled`` are set. Audio and listener failures are logged and never
propagate.

Usage:
    center = NotificationCenter(toner_factory=TerminalBellToner)
    with center.listening(render):
        center.notify_new_order(order)
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Iterator

from shared.config.constants import OrderStatus
from shared.config.logging import get_logger
from shared.config.settings import settings
from kitchen_feed.components.core.constants import KitchenConstants
from kitchen_feed.components.notifications.toner import (
    NotificationType,
    NullToner,
    TerminalBellToner,
    Tone,
    Toner,
)
from kitchen_feed.components.orders.models import Order
from kitchen_feed.components.sla.timer import utc_now

logger = get_logger(__name__)

NotificationListener = Callable[["Notification"], None]


def display_seconds(notification_type: NotificationType) -> float:
    if notification_type is NotificationType.URGENT:
        return KitchenConstants.URGENT_DISPLAY_SECONDS
    return KitchenConstants.DEFAULT_DISPLAY_SECONDS


@dataclass(frozen=True, slots=True)
class Notification:
    """One ephemeral alert entry."""

    type: NotificationType
    title: str
    message: str
    timestamp: datetime
    sound: bool = False
    order: Order | None = None
    duration: float = KitchenConstants.DEFAULT_DISPLAY_SECONDS
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    @property
    def expires_at(self) -> datetime:
        return self.timestamp + timedelta(seconds=self.duration)

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


def _order_label(order: Order) -> str:
    label = f"Order #{order.order_number}"
    if order.table_number:
        label = f"{label} - Table {order.table_number}"
    return label


class NotificationCenter:
    """Creates, plays and tracks kitchen notifications."""

    def __init__(
        self,
        sound_enabled: bool | None = None,
        volume: float | None = None,
        toner_factory: Callable[[], Toner] = TerminalBellToner,
        clock: Callable[[], datetime] = utc_now,
    ):
        """
        Args:
            sound_enabled: Master mute (defaults to settings.sound_enabled).
            volume: 0..1 output level (defaults to settings.volume).
            toner_factory: Builds the audio output on first use.
            clock: Source of notification timestamps.
        """
        self._sound_enabled = settings.sound_enabled if sound_enabled is None else sound_enabled
        self._volume = self._clamp(settings.volume if volume is None else volume)
        self._toner_factory = toner_factory
        self._toner: Toner | None = None
        self._clock = clock
        self._entries: dict[str, Notification] = {}
        self._listeners: list[NotificationListener] = []

    # ==========================================================================
    # Controls
    # ==========================================================================

    @property
    def sound_enabled(self) -> bool:
        return self._sound_enabled

    @sound_enabled.setter
    def sound_enabled(self, value: bool) -> None:
        self._sound_enabled = bool(value)

    @property
    def volume(self) -> float:
        return self._volume

    @volume.setter
    def volume(self, value: float) -> None:
        self._volume = self._clamp(value)

    @staticmethod
    def _clamp(value: float) -> float:
        return min(1.0, max(0.0, float(value)))

    # ==========================================================================
    # Subscription
    # ==========================================================================

    def subscribe(self, listener: NotificationListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @contextmanager
    def listening(self, listener: NotificationListener) -> Iterator[NotificationCenter]:
        """Keep ``listener`` registered for the duration of the block."""
        unsubscribe = self.subscribe(listener)
        try:
            yield self
        finally:
            unsubscribe()

    # ==========================================================================
    # Emitters
    # ==========================================================================

    def show(
        self,
        notification_type: NotificationType | str,
        title: str,
        message: str,
        order: Order | None = None,
        sound: bool = False,
    ) -> Notification:
        """Create an entry, play its tone if due, and hand it to listeners."""
        notification_type = NotificationType(notification_type)
        now = self._clock()
        self._prune(now)

        notification = Notification(
            type=notification_type,
            title=title,
            message=message,
            timestamp=now,
            sound=sound,
            order=order,
            duration=display_seconds(notification_type),
        )
        self._entries[notification.id] = notification

        if sound and self._sound_enabled:
            self._play(notification_type)

        for listener in list(self._listeners):
            try:
                listener(notification)
            except Exception as e:
                logger.error(
                    "Notification listener failed",
                    notification_type=notification_type.value,
                    error=str(e),
                    exc_info=True,
                )

        logger.debug(
            "Notification shown",
            notification_type=notification_type.value,
            notification_id=notification.id,
            order_id=order.id if order else None,
        )
        return notification

    def notify_new_order(self, order: Order) -> Notification:
        return self.show(
            NotificationType.NEW_ORDER,
            "New order",
            _order_label(order),
            order=order,
            sound=True,
        )

    def notify_status_update(self, order: Order, new_status: OrderStatus | str) -> Notification:
        status = OrderStatus(new_status)
        return self.show(
            NotificationType.STATUS_UPDATE,
            "Order updated",
            f"{_order_label(order)} is now {status.value}",
            order=order,
        )

    def notify_urgent(self, message: str, order: Order | None = None) -> Notification:
        return self.show(NotificationType.URGENT, "Urgent", message, order=order, sound=True)

    def notify_success(self, message: str) -> Notification:
        return self.show(NotificationType.SUCCESS, "Success", message)

    def notify_error(self, message: str) -> Notification:
        return self.show(NotificationType.ERROR, "Error", message)

    # ==========================================================================
    # Entries
    # ==========================================================================

    def active(self, now: datetime | None = None) -> list[Notification]:
        """Entries not yet expired or dismissed, oldest first."""
        now = now or self._clock()
        return [n for n in self._entries.values() if not n.is_expired(now)]

    def dismiss(self, notification_id: str) -> bool:
        return self._entries.pop(notification_id, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def _prune(self, now: datetime) -> None:
        for notification_id in [k for k, n in self._entries.items() if n.is_expired(now)]:
            del self._entries[notification_id]

    # ==========================================================================
    # Audio
    # ==========================================================================

    def _play(self, notification_type: NotificationType) -> None:
        try:
            if self._toner is None:
                self._toner = self._toner_factory()
            self._toner.play(Tone.for_type(notification_type, self._volume))
        except Exception as e:
            logger.warning(
                "Audio alert failed, continuing without sound",
                notification_type=notification_type.value,
                error=str(e),
            )
            if self._toner is None:
                self._toner = NullToner()

    def close(self) -> None:
        """Release the audio output."""
        toner, self._toner = self._toner, None
        if toner is None:
            return
        try:
            toner.close()
        except Exception as e:
            logger.warning("Error closing audio output", error=str(e))

    def get_stats(self) -> dict[str, int | float | bool]:
        return {
            "entries": len(self._entries),
            "listeners": len(self._listeners),
            "sound_enabled": self._sound_enabled,
            "volume": self._volume,
        }

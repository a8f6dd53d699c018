"""
Centralized constants for the kitchen feed.

Usage:
    from shared.config.constants import OrderStatus, ACTIVE_ORDER_STATUSES

    if order.status in ACTIVE_ORDER_STATUSES:
        ...
"""

from enum import Enum
from typing import Final


# =============================================================================
# Order Status
# =============================================================================


class OrderStatus(str, Enum):
    """Order lifecycle status as reported by the backend."""

    PENDING = "PENDING"
    PREPARING = "PREPARING"
    READY = "READY"
    DELIVERED = "DELIVERED"
    CANCELLED = "CANCELLED"


# Kitchen staff only act on these
ACTIVE_ORDER_STATUSES: Final[frozenset[OrderStatus]] = frozenset({
    OrderStatus.PENDING,
    OrderStatus.PREPARING,
})

TERMINAL_ORDER_STATUSES: Final[frozenset[OrderStatus]] = frozenset({
    OrderStatus.READY,
    OrderStatus.DELIVERED,
    OrderStatus.CANCELLED,
})


# =============================================================================
# Event Channel
# =============================================================================


class EventKind(str, Enum):
    """Inbound event kinds pushed on the restaurant's event channel."""

    ORDER_CREATED = "order.created"
    ORDER_UPDATED = "order.updated"
    ORDER_STATUS_CHANGED = "order.status.changed"
    KITCHEN_NOTIFICATION = "kitchen.notification"


VALID_EVENT_KINDS: Final[frozenset[str]] = frozenset(k.value for k in EventKind)


class Commands:
    """Outbound command and control message names."""

    UPDATE_ORDER_STATUS: Final[str] = "updateOrderStatus"
    KITCHEN_NOTIFICATION: Final[str] = "kitchen.notification"
    SUBSCRIBE: Final[str] = "subscribe"
    UNSUBSCRIBE: Final[str] = "unsubscribe"


def orders_channel(restaurant_id: str) -> str:
    """Channel carrying order lifecycle events for a restaurant."""
    return f"orders:{restaurant_id}"


def kitchen_channel(restaurant_id: str) -> str:
    """Channel carrying kitchen notifications for a restaurant."""
    return f"kitchen:{restaurant_id}"

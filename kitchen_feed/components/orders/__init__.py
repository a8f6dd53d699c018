"""
Order components.

Wire models, the order-listing client and the active order queue.
"""

from kitchen_feed.components.orders.models import Order, OrderItem, OrderPatch
from kitchen_feed.components.orders.client import OrderApiClient
from kitchen_feed.components.orders.queue import (
    OrderQueue,
    QueueChange,
    ChangeType,
    StatusFilter,
)

__all__ = [
    "Order",
    "OrderItem",
    "OrderPatch",
    "OrderApiClient",
    "OrderQueue",
    "QueueChange",
    "ChangeType",
    "StatusFilter",
]

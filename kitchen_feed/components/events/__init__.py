"""
Event components.

Inbound event value objects and the per-kind dispatcher.
"""

from kitchen_feed.components.events.types import (
    KitchenEvent,
    NOTIFICATION_LEVELS,
    parse_event,
)
from kitchen_feed.components.events.dispatcher import (
    EventDispatcher,
    EventCallback,
    CommandSender,
)

__all__ = [
    "KitchenEvent",
    "NOTIFICATION_LEVELS",
    "parse_event",
    "EventDispatcher",
    "EventCallback",
    "CommandSender",
]

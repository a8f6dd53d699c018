"""
Notification components.

The NotificationCenter registry and the Toner audio abstraction.
"""

from kitchen_feed.components.notifications.toner import (
    NotificationType,
    TONE_FREQUENCIES,
    Tone,
    Toner,
    NullToner,
    TerminalBellToner,
)
from kitchen_feed.components.notifications.center import (
    Notification,
    NotificationCenter,
    display_seconds,
)

__all__ = [
    "NotificationType",
    "TONE_FREQUENCIES",
    "Tone",
    "Toner",
    "NullToner",
    "TerminalBellToner",
    "Notification",
    "NotificationCenter",
    "display_seconds",
]

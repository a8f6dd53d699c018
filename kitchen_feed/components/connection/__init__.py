"""
Connection components.

Explicit connection state machine and the supervising ConnectionManager.
"""

from kitchen_feed.components.connection.state import (
    ConnectionState,
    ConnectionStateMachine,
    ALLOWED_TRANSITIONS,
    can_transition,
)
from kitchen_feed.components.connection.manager import (
    ConnectionManager,
    Transport,
    Connector,
    build_channel_url,
    websocket_connector,
)

__all__ = [
    "ConnectionState",
    "ConnectionStateMachine",
    "ALLOWED_TRANSITIONS",
    "can_transition",
    "ConnectionManager",
    "Transport",
    "Connector",
    "build_channel_url",
    "websocket_connector",
]

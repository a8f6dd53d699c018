"""
Kitchen Feed Components.

Domain-specific modules:
- core/          - Constants and shared protocols
- resilience/    - Reconnect backoff
- metrics/       - Observability counters
- orders/        - Order models, REST client, active order queue
- sla/           - Elapsed-time severity and the shared ticker
- notifications/ - Notification registry and audio output
- events/        - Event value objects and dispatcher
- connection/    - Connection state machine and manager

All public symbols are re-exported here; import from the submodules when
only one is needed.
"""

# =============================================================================
# Core
# =============================================================================
from kitchen_feed.components.core.constants import WSCloseCode, KitchenConstants, HasStats

# =============================================================================
# Resilience & Metrics
# =============================================================================
from kitchen_feed.components.resilience.retry import (
    RetryConfig,
    calculate_delay_with_jitter,
    create_ws_retry_config,
)
from kitchen_feed.components.metrics.collector import MetricsCollector

# =============================================================================
# Orders
# =============================================================================
from kitchen_feed.components.orders.models import Order, OrderItem, OrderPatch
from kitchen_feed.components.orders.client import OrderApiClient
from kitchen_feed.components.orders.queue import (
    OrderQueue,
    QueueChange,
    ChangeType,
    StatusFilter,
)

# =============================================================================
# SLA
# =============================================================================
from kitchen_feed.components.sla.timer import (
    SlaSeverity,
    SlaReading,
    SlaScheduler,
    format_duration,
)

# =============================================================================
# Notifications
# =============================================================================
from kitchen_feed.components.notifications.toner import (
    NotificationType,
    Tone,
    Toner,
    NullToner,
    TerminalBellToner,
)
from kitchen_feed.components.notifications.center import Notification, NotificationCenter

# =============================================================================
# Events
# =============================================================================
from kitchen_feed.components.events.types import KitchenEvent
from kitchen_feed.components.events.dispatcher import EventDispatcher

# =============================================================================
# Connection
# =============================================================================
from kitchen_feed.components.connection.state import ConnectionState, ConnectionStateMachine
from kitchen_feed.components.connection.manager import ConnectionManager

__all__ = [
    # Core
    "WSCloseCode",
    "KitchenConstants",
    "HasStats",
    # Resilience & Metrics
    "RetryConfig",
    "calculate_delay_with_jitter",
    "create_ws_retry_config",
    "MetricsCollector",
    # Orders
    "Order",
    "OrderItem",
    "OrderPatch",
    "OrderApiClient",
    "OrderQueue",
    "QueueChange",
    "ChangeType",
    "StatusFilter",
    # SLA
    "SlaSeverity",
    "SlaReading",
    "SlaScheduler",
    "format_duration",
    # Notifications
    "NotificationType",
    "Tone",
    "Toner",
    "NullToner",
    "TerminalBellToner",
    "Notification",
    "NotificationCenter",
    # Events
    "KitchenEvent",
    "EventDispatcher",
    # Connection
    "ConnectionState",
    "ConnectionStateMachine",
    "ConnectionManager",
]

"""
Metrics components.

Counters for connection, event and command activity.
"""

from kitchen_feed.components.metrics.collector import (
    MetricsCollector,
    ConnectionMetrics,
    EventMetrics,
    CommandMetrics,
)

__all__ = [
    "MetricsCollector",
    "ConnectionMetrics",
    "EventMetrics",
    "CommandMetrics",
]

"""
SLA components.
"""

from kitchen_feed.components.sla.timer import (
    SlaSeverity,
    SlaReading,
    SlaScheduler,
    elapsed_seconds,
    severity_for,
    format_duration,
    utc_now,
)

__all__ = [
    "SlaSeverity",
    "SlaReading",
    "SlaScheduler",
    "elapsed_seconds",
    "severity_for",
    "format_duration",
    "utc_now",
]

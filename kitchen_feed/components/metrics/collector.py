"""
Metrics Collector for the kitchen feed.

Centralizes counters for observability. Everything in the pipeline runs on
one event loop, but the lock keeps snapshots consistent when a health probe
reads them from another thread.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Any


@dataclass
class ConnectionMetrics:
    """Metrics for the event-channel connection."""
    attempts: int = 0
    failures: int = 0
    drops: int = 0
    reconnects_exhausted: int = 0


@dataclass
class EventMetrics:
    """Metrics for inbound event processing."""
    received: int = 0
    dispatched: int = 0
    invalid_schema: int = 0
    unknown_kind: int = 0
    oversized: int = 0
    callback_errors: int = 0


@dataclass
class CommandMetrics:
    """Metrics for outbound commands."""
    sent: int = 0
    rejected: int = 0


class MetricsCollector:
    """
    Thread-safe metrics collector for the kitchen pipeline.

    Usage:
        metrics = MetricsCollector()
        metrics.increment_events_received()
        stats = metrics.get_snapshot()
    """

    def __init__(self):
        """Initialize metrics collector."""
        self._lock = threading.Lock()
        self._connection = ConnectionMetrics()
        self._event = EventMetrics()
        self._command = CommandMetrics()

    # ==========================================================================
    # Connection Metrics
    # ==========================================================================

    def increment_connection_attempts(self) -> None:
        with self._lock:
            self._connection.attempts += 1

    def increment_connection_failures(self) -> None:
        with self._lock:
            self._connection.failures += 1

    def increment_connection_drops(self) -> None:
        """Count connections lost without an explicit disconnect."""
        with self._lock:
            self._connection.drops += 1

    def increment_reconnects_exhausted(self) -> None:
        with self._lock:
            self._connection.reconnects_exhausted += 1

    # ==========================================================================
    # Event Metrics
    # ==========================================================================

    def increment_events_received(self) -> None:
        with self._lock:
            self._event.received += 1

    def increment_events_dispatched(self) -> None:
        with self._lock:
            self._event.dispatched += 1

    def increment_events_invalid_schema(self) -> int:
        """Increment invalid-schema count and return the new total."""
        with self._lock:
            self._event.invalid_schema += 1
            return self._event.invalid_schema

    def increment_events_unknown_kind(self) -> int:
        """Increment unknown-kind count and return the new total."""
        with self._lock:
            self._event.unknown_kind += 1
            return self._event.unknown_kind

    def increment_events_oversized(self) -> None:
        with self._lock:
            self._event.oversized += 1

    def increment_callback_errors(self) -> None:
        with self._lock:
            self._event.callback_errors += 1

    # ==========================================================================
    # Command Metrics
    # ==========================================================================

    def increment_commands_sent(self) -> None:
        with self._lock:
            self._command.sent += 1

    def increment_commands_rejected(self) -> None:
        """Count commands that could not be handed to the transport."""
        with self._lock:
            self._command.rejected += 1

    # ==========================================================================
    # Snapshot
    # ==========================================================================

    def get_snapshot(self) -> dict[str, Any]:
        """
        Get a snapshot of all metrics.

        Returns a copy to prevent modification of internal state.
        """
        with self._lock:
            return self._get_snapshot_internal()

    def get_stats(self) -> dict[str, Any]:
        return self.get_snapshot()

    def _get_snapshot_internal(self) -> dict[str, Any]:
        return {
            # Connection metrics
            "connections_attempts": self._connection.attempts,
            "connections_failures": self._connection.failures,
            "connections_drops": self._connection.drops,
            "connections_reconnects_exhausted": self._connection.reconnects_exhausted,
            # Event metrics
            "events_received": self._event.received,
            "events_dispatched": self._event.dispatched,
            "events_invalid_schema": self._event.invalid_schema,
            "events_unknown_kind": self._event.unknown_kind,
            "events_oversized": self._event.oversized,
            "events_callback_errors": self._event.callback_errors,
            # Command metrics
            "commands_sent": self._command.sent,
            "commands_rejected": self._command.rejected,
        }

    def reset(self) -> dict[str, Any]:
        """
        Reset all metrics and return the previous values.

        Useful for periodic metric collection systems.
        """
        with self._lock:
            snapshot = self._get_snapshot_internal()
            self._connection = ConnectionMetrics()
            self._event = EventMetrics()
            self._command = CommandMetrics()
            return snapshot

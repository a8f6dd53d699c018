"""
Kitchen Feed Constants.

Centralized constants with documentation explaining rationale for each value.
Values marked as configurable are defaults; shared.config.settings wins at runtime.
"""

from enum import IntEnum
from typing import Final, Protocol

__all__ = [
    "WSCloseCode",
    "KitchenConstants",
    "HasStats",
]


class WSCloseCode(IntEnum):
    """
    WebSocket close codes the client sends or interprets.

    Standard codes (1000-1999) from RFC 6455.
    Custom codes (4000-4999) are what the backend uses for auth/rate errors.
    """

    NORMAL = 1000  # Client disconnect
    GOING_AWAY = 1001  # Server shutting down
    SERVER_ERROR = 1011  # Unexpected server error

    AUTH_FAILED = 4001  # Token rejected; retrying will not help
    FORBIDDEN = 4003  # Valid auth but wrong restaurant


class KitchenConstants:
    """
    Kitchen pipeline operational constants.

    Configurable via settings.py:
    - ws_reconnect_attempts, ws_reconnect_delay, ws_max_reconnect_delay
    - sla_tick_interval
    """

    # ==========================================================================
    # SLA Thresholds
    # ==========================================================================

    # SLA_WARNING_SECONDS: 10 minutes
    # Rationale: A plate waiting longer than 10 minutes needs attention.
    # Fixed, and independent of order status.
    SLA_WARNING_SECONDS: Final[int] = 600

    # SLA_CRITICAL_SECONDS: 20 minutes
    SLA_CRITICAL_SECONDS: Final[int] = 1200

    # SLA_TICK_INTERVAL: 1 second
    # Rationale: Displayed timers have one-second resolution.
    SLA_TICK_INTERVAL: Final[float] = 1.0

    # ==========================================================================
    # Notification Constants
    # ==========================================================================

    # URGENT_DISPLAY_SECONDS / DEFAULT_DISPLAY_SECONDS
    # Rationale: Urgent alerts stay on screen twice as long so they are not
    # missed during a rush.
    URGENT_DISPLAY_SECONDS: Final[float] = 10.0
    DEFAULT_DISPLAY_SECONDS: Final[float] = 5.0

    # TONE_DURATION_SECONDS: 0.3
    # Rationale: Short enough not to mask kitchen noise cues, long enough to hear.
    TONE_DURATION_SECONDS: Final[float] = 0.3

    # ==========================================================================
    # Connection Constants
    # ==========================================================================

    # CLOSE_TIMEOUT: 5 seconds
    # Rationale: Bound the closing handshake so disconnect() never hangs.
    CLOSE_TIMEOUT: Final[float] = 5.0

    # RETRY_JITTER_FACTOR: 0.25
    # Rationale: Spreads reconnects of many kitchen screens after a backend restart.
    RETRY_JITTER_FACTOR: Final[float] = 0.25

    # ==========================================================================
    # Event Constants
    # ==========================================================================

    # DROP_LOG_INTERVAL: 100
    # Rationale: Log the first malformed event and then every 100th so a
    # misbehaving publisher cannot flood the log.
    DROP_LOG_INTERVAL: Final[int] = 100


class HasStats(Protocol):
    """
    Protocol for components that provide statistics.

    All stats methods should return a dict with string keys.
    """

    def get_stats(self) -> dict[str, int | float | str]:
        """Return component statistics as a dictionary."""
        ...

"""
Retry Utilities for the kitchen feed.

Provides reconnect delays with exponential backoff and jitter.
Jitter spreads the reconnect storm when every kitchen screen loses the
backend at the same moment.
"""

from __future__ import annotations

import random
from dataclasses import dataclass
from typing import Final

from kitchen_feed.components.core.constants import KitchenConstants


# =============================================================================
# Constants
# =============================================================================


# Default jitter range: ±25% of calculated delay
DEFAULT_JITTER_FACTOR: Final[float] = KitchenConstants.RETRY_JITTER_FACTOR

# Default exponential backoff base
DEFAULT_BACKOFF_BASE: Final[float] = 2.0

# Default initial delay in seconds
DEFAULT_INITIAL_DELAY: Final[float] = 3.0


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True, slots=True)
class RetryConfig:
    """
    Configuration for retry behavior.

    Attributes:
        initial_delay: Base delay in seconds (default: 3.0).
        max_delay: Maximum delay cap in seconds (default: 30.0).
        backoff_base: Exponential backoff multiplier (default: 2.0).
        jitter_factor: Random jitter range as fraction (default: 0.25 = ±25%).
        max_attempts: Maximum retry attempts (default: 5).
    """

    initial_delay: float = DEFAULT_INITIAL_DELAY
    max_delay: float = 30.0
    backoff_base: float = DEFAULT_BACKOFF_BASE
    jitter_factor: float = DEFAULT_JITTER_FACTOR
    max_attempts: int = 5

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.initial_delay <= 0:
            raise ValueError("initial_delay must be positive")
        if self.max_delay < self.initial_delay:
            raise ValueError("max_delay must be >= initial_delay")
        if self.backoff_base < 1:
            raise ValueError("backoff_base must be >= 1")
        if not 0 <= self.jitter_factor <= 1:
            raise ValueError("jitter_factor must be between 0 and 1")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")


# =============================================================================
# Retry Functions
# =============================================================================


def calculate_delay_with_jitter(
    attempt: int,
    config: RetryConfig | None = None,
) -> float:
    """
    Calculate retry delay with exponential backoff and jitter.

    The delay is calculated as:
        base_delay = initial_delay * (backoff_base ^ attempt)
        capped_delay = min(base_delay, max_delay)
        final_delay = max(initial_delay, capped_delay * (1 ± jitter_factor))

    The floor at ``initial_delay`` means a retry never fires sooner than the
    first one did, whatever the jitter draws.

    Args:
        attempt: Current attempt number (0-indexed).
        config: Retry configuration (uses defaults if None).

    Returns:
        Delay in seconds with jitter applied.

    Example:
        >>> config = RetryConfig(initial_delay=1.0, max_delay=30.0)
        >>> delay = calculate_delay_with_jitter(0, config)  # 1.0s to 1.25s
        >>> delay = calculate_delay_with_jitter(1, config)  # ~2.0s ± 25%
        >>> delay = calculate_delay_with_jitter(5, config)  # ~30.0s ± 25% (capped)
    """
    if config is None:
        config = RetryConfig()

    base_delay = config.initial_delay * (config.backoff_base ** attempt)
    capped_delay = min(base_delay, config.max_delay)

    jitter_range = capped_delay * config.jitter_factor
    jitter = random.uniform(-jitter_range, jitter_range)

    return max(config.initial_delay, capped_delay + jitter)


def should_retry(attempt: int, max_attempts: int) -> bool:
    """
    Determine if another retry attempt should be made.

    Args:
        attempt: Number of attempts already made (1-indexed).
        max_attempts: Maximum allowed attempts.

    Returns:
        True if should retry, False if max attempts reached.
    """
    return attempt < max_attempts


# =============================================================================
# Factory Functions
# =============================================================================


def create_ws_retry_config(
    initial_delay: float,
    max_delay: float,
    max_attempts: int,
) -> RetryConfig:
    """
    Create retry config for the kitchen event channel.

    Args:
        initial_delay: First reconnect delay (settings.ws_reconnect_delay).
        max_delay: Cap between attempts (settings.ws_max_reconnect_delay).
        max_attempts: Attempts before giving up (settings.ws_reconnect_attempts).

    Returns:
        RetryConfig for WebSocket reconnection.
    """
    return RetryConfig(
        initial_delay=initial_delay,
        max_delay=max(max_delay, initial_delay),
        backoff_base=DEFAULT_BACKOFF_BASE,
        jitter_factor=DEFAULT_JITTER_FACTOR,
        max_attempts=max_attempts,
    )

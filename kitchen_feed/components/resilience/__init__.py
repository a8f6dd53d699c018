"""
Resilience components.

Reconnect backoff with jitter.
"""

from kitchen_feed.components.resilience.retry import (
    RetryConfig,
    calculate_delay_with_jitter,
    should_retry,
    create_ws_retry_config,
)

__all__ = [
    "RetryConfig",
    "calculate_delay_with_jitter",
    "should_retry",
    "create_ws_retry_config",
]

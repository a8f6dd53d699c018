"""
Shared utilities.
"""

from shared.utils.exceptions import (
    KitchenFeedError,
    ConnectionFailedError,
    ReconnectExhaustedError,
    InvalidTransitionError,
    MalformedEventError,
    OrderApiError,
)

__all__ = [
    "KitchenFeedError",
    "ConnectionFailedError",
    "ReconnectExhaustedError",
    "InvalidTransitionError",
    "MalformedEventError",
    "OrderApiError",
]

"""
Core components: constants and shared protocols.
"""

from kitchen_feed.components.core.constants import (
    WSCloseCode,
    KitchenConstants,
    HasStats,
)

__all__ = [
    "WSCloseCode",
    "KitchenConstants",
    "HasStats",
]

"""
Configuration module: Settings, logging, constants.
"""

from shared.config.settings import settings, get_settings, Settings
from shared.config.logging import get_logger, setup_logging
from shared.config.constants import (
    OrderStatus,
    EventKind,
    Commands,
    ACTIVE_ORDER_STATUSES,
    TERMINAL_ORDER_STATUSES,
    VALID_EVENT_KINDS,
)

__all__ = [
    # settings
    "settings",
    "get_settings",
    "Settings",
    # logging
    "get_logger",
    "setup_logging",
    # constants
    "OrderStatus",
    "EventKind",
    "Commands",
    "ACTIVE_ORDER_STATUSES",
    "TERMINAL_ORDER_STATUSES",
    "VALID_EVENT_KINDS",
]

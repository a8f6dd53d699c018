"""
Centralized exceptions for the kitchen feed.

Exceptions log themselves on construction with structured context, so
call sites can raise without a separate log line. MalformedEventError is
the exception: dropped frames are logged, sampled, by the dispatcher.

Usage:
    from shared.utils.exceptions import OrderApiError, InvalidTransitionError

    raise OrderApiError("HTTP_500", "Backend unavailable", restaurant_id=rid)
    raise InvalidTransitionError("CONNECTED", "CONNECTING")
"""

from typing import Any

from shared.config.logging import get_logger

logger = get_logger(__name__)


class KitchenFeedError(Exception):
    """
    Base exception with automatic logging.

    All custom exceptions should inherit from this class
    to ensure consistent logging.
    """

    def __init__(
        self,
        detail: str,
        log_level: str | None = "warning",
        **log_context: Any,
    ):
        # None leaves logging to the caller
        if log_level is not None:
            log_fn = getattr(logger, log_level, logger.warning)
            log_fn(detail, error_type=type(self).__name__, **log_context)

        super().__init__(detail)
        self.detail = detail
        self.context = log_context


# =============================================================================
# Connection Errors
# =============================================================================


class ConnectionFailedError(KitchenFeedError):
    """
    A single connection attempt failed (refused, timed out, closed during handshake).

    Usage:
        raise ConnectionFailedError(url, reason=str(exc))
    """

    def __init__(self, url: str, reason: str | None = None, **log_context: Any):
        detail = f"Connection to {url} failed"
        if reason:
            detail = f"{detail}: {reason}"
        super().__init__(detail, log_level="warning", url=url, **log_context)
        self.url = url
        self.reason = reason


class ReconnectExhaustedError(KitchenFeedError):
    """Automatic reconnection gave up after the configured number of attempts."""

    def __init__(self, attempts: int, **log_context: Any):
        super().__init__(
            f"Failed to reconnect after {attempts} attempts",
            log_level="error",
            attempts=attempts,
            **log_context,
        )
        self.attempts = attempts


class InvalidTransitionError(KitchenFeedError):
    """
    Illegal connection state transition.

    Usage:
        raise InvalidTransitionError("CONNECTED", "CONNECTING")
    """

    def __init__(self, current: str, requested: str, **log_context: Any):
        super().__init__(
            f"Illegal connection transition {current} -> {requested}",
            log_level="error",
            current=current,
            requested=requested,
            **log_context,
        )
        self.current = current
        self.requested = requested


# =============================================================================
# Event Errors
# =============================================================================


class MalformedEventError(KitchenFeedError):
    """
    Inbound event failed parsing or shape validation.

    Not logged on construction; the dispatcher logs drops sampled.
    """

    def __init__(self, reason: str, kind: str | None = None, **log_context: Any):
        super().__init__(
            f"Malformed event: {reason}",
            log_level=None,
            kind=kind,
            **log_context,
        )
        self.reason = reason
        self.kind = kind


# =============================================================================
# REST Errors
# =============================================================================


class OrderApiError(KitchenFeedError):
    """
    The order-listing service returned an error or an unusable body.

    Mirrors the backend error envelope: ``{"status": "error", "error": {"code", "message"}}``.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int | None = None,
        **log_context: Any,
    ):
        super().__init__(
            message,
            log_level="error",
            code=code,
            status_code=status_code,
            **log_context,
        )
        self.code = code
        self.status_code = status_code

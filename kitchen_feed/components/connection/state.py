"""
Connection state machine.

    DISCONNECTED -> CONNECTING -> CONNECTED
    CONNECTING -> DISCONNECTED   (attempt failed or cancelled)
    CONNECTED -> DISCONNECTED    (drop or explicit disconnect)

Anything else raises InvalidTransitionError. The machine holds the state and
the last error only; retry policy lives in ConnectionManager.
"""

from __future__ import annotations

from enum import Enum
from typing import Callable, Final

from shared.config.logging import get_logger
from shared.utils.exceptions import InvalidTransitionError

logger = get_logger(__name__)


class ConnectionState(str, Enum):
    """Connection lifecycle states reported to the UI."""

    DISCONNECTED = "DISCONNECTED"
    CONNECTING = "CONNECTING"
    CONNECTED = "CONNECTED"


ALLOWED_TRANSITIONS: Final[dict[ConnectionState, frozenset[ConnectionState]]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING}),
    ConnectionState.CONNECTING: frozenset({
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
    }),
    ConnectionState.CONNECTED: frozenset({ConnectionState.DISCONNECTED}),
}

StateListener = Callable[[ConnectionState, ConnectionState, BaseException | None], None]


def can_transition(current: ConnectionState, new: ConnectionState) -> bool:
    """Pure transition check."""
    return new in ALLOWED_TRANSITIONS[current]


class ConnectionStateMachine:
    """
    Holds the current ConnectionState and the last connection error.

    Listeners receive ``(previous, current, error)`` after every transition.
    A listener that raises is logged and skipped.
    """

    def __init__(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        self._last_error: BaseException | None = None
        self._listeners: list[StateListener] = []

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def last_error(self) -> BaseException | None:
        return self._last_error

    def transition(
        self,
        new: ConnectionState,
        error: BaseException | None = None,
    ) -> ConnectionState:
        """
        Move to ``new``, recording ``error`` as the last error.

        Entering CONNECTED clears the last error. Entering CONNECTING keeps it,
        so the UI can still show why the previous attempt failed.

        Returns:
            The previous state.

        Raises:
            InvalidTransitionError: If the transition is not allowed.
        """
        previous = self._state
        if not can_transition(previous, new):
            raise InvalidTransitionError(previous.value, new.value)

        self._state = new
        if new is ConnectionState.CONNECTED:
            self._last_error = None
        elif error is not None:
            self._last_error = error

        logger.debug(
            "Connection state changed",
            previous=previous.value,
            state=new.value,
            error=str(error) if error else None,
        )
        for listener in list(self._listeners):
            try:
                listener(previous, new, error)
            except Exception as e:
                logger.error("Connection state listener failed", error=str(e), exc_info=True)
        return previous

    def record_error(self, error: BaseException) -> None:
        """Set the last error without a state change."""
        self._last_error = error

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Register a state listener; returns a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

"""
Connection Manager for the kitchen event channel.

Owns one WebSocket connection per restaurant and keeps it alive:

- connect() is non-blocking. It moves to CONNECTING and starts a supervisor
  task that opens the socket, reads frames and reconnects after failures.
- Reconnects use capped exponential backoff with jitter (RetryConfig). After
  ``max_attempts`` reconnects in a row fail, the manager stays DISCONNECTED,
  ``last_error`` is a ReconnectExhaustedError and ``reconnect_failed`` fires.
- disconnect() cancels the supervisor and bumps a generation counter. An
  attempt that resolves after the bump closes its socket and never touches
  the state.

Frames are handed unparsed to ``on_message``; the manager never looks inside.

Usage:
    manager = ConnectionManager(on_message=dispatcher.dispatch_raw)
    manager.on_connected(send_subscriptions)
    await manager.connect("rest-1")
    ...
    await manager.disconnect()
"""

from __future__ import annotations

import asyncio
import inspect
import json
from typing import Any, Awaitable, Callable, Protocol
from urllib.parse import urlencode, urlsplit, urlunsplit, parse_qsl

import websockets
from websockets.exceptions import ConnectionClosed

from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.utils.exceptions import ConnectionFailedError, ReconnectExhaustedError
from kitchen_feed.components.connection.state import (
    ConnectionState,
    ConnectionStateMachine,
    StateListener,
)
from kitchen_feed.components.core.constants import KitchenConstants, WSCloseCode
from kitchen_feed.components.metrics.collector import MetricsCollector
from kitchen_feed.components.resilience.retry import (
    RetryConfig,
    calculate_delay_with_jitter,
    create_ws_retry_config,
    should_retry,
)

logger = get_logger(__name__)

# Close codes after which reconnecting cannot succeed
NON_RETRYABLE_CLOSE_CODES = frozenset({WSCloseCode.AUTH_FAILED, WSCloseCode.FORBIDDEN})


class Transport(Protocol):
    """The subset of a websockets ClientConnection the manager relies on."""

    async def send(self, message: str) -> None: ...

    async def recv(self) -> str | bytes: ...

    async def close(self) -> None: ...


Connector = Callable[[str], Awaitable[Transport]]
MessageHandler = Callable[[str | bytes], Any]
ConnectedListener = Callable[[], Any]
ReconnectFailedListener = Callable[[BaseException], Any]


async def websocket_connector(url: str) -> Transport:
    """Open a client WebSocket with the configured timeouts."""
    return await websockets.connect(
        url,
        open_timeout=settings.ws_open_timeout,
        close_timeout=KitchenConstants.CLOSE_TIMEOUT,
    )


def build_channel_url(base_url: str, restaurant_id: str, token: str | None = None) -> str:
    """Append the restaurant (and token, if any) to the event channel URL."""
    parts = urlsplit(base_url)
    query = dict(parse_qsl(parts.query))
    query["restaurantId"] = restaurant_id
    if token:
        query["token"] = token
    return urlunsplit(parts._replace(query=urlencode(query)))


def _close_code(error: BaseException) -> int | None:
    if isinstance(error, ConnectionClosed) and error.rcvd is not None:
        return error.rcvd.code
    return None


class ConnectionManager:
    """
    Supervises the event-channel connection for one restaurant at a time.

    State changes are the only externally visible effect; subscribe() to
    observe them.
    """

    def __init__(
        self,
        url: str | None = None,
        on_message: MessageHandler | None = None,
        connector: Connector | None = None,
        retry_config: RetryConfig | None = None,
        metrics: MetricsCollector | None = None,
        token: str | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """
        Args:
            url: Event channel base URL (defaults to settings.ws_url).
            on_message: Called with every inbound frame.
            connector: Coroutine factory opening a transport for a URL.
            retry_config: Reconnect policy (defaults from settings).
            metrics: Shared collector; a private one is created if None.
            token: Optional auth token sent as a query parameter.
            sleep: Backoff sleep, replaceable in tests.
        """
        self._base_url = url or settings.ws_url
        self._on_message = on_message
        self._connector = connector or websocket_connector
        self._retry = retry_config or create_ws_retry_config(
            initial_delay=settings.ws_reconnect_delay,
            max_delay=settings.ws_max_reconnect_delay,
            max_attempts=settings.ws_reconnect_attempts,
        )
        self._metrics = metrics or MetricsCollector()
        self._token = token if token is not None else (settings.api_token or None)
        self._sleep = sleep

        self._fsm = ConnectionStateMachine()
        self._generation = 0
        self._restaurant_id: str | None = None
        self._supervisor: asyncio.Task[None] | None = None
        self._transport: Transport | None = None
        self._connected_event = asyncio.Event()
        self._connected_listeners: list[ConnectedListener] = []
        self._reconnect_failed_listeners: list[ReconnectFailedListener] = []

    # ==========================================================================
    # State
    # ==========================================================================

    @property
    def state(self) -> ConnectionState:
        return self._fsm.state

    @property
    def last_error(self) -> BaseException | None:
        return self._fsm.last_error

    @property
    def is_connected(self) -> bool:
        return self._fsm.state is ConnectionState.CONNECTED

    @property
    def restaurant_id(self) -> str | None:
        return self._restaurant_id

    @property
    def retry_config(self) -> RetryConfig:
        return self._retry

    def set_message_handler(self, handler: MessageHandler) -> None:
        self._on_message = handler

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Observe state transitions; returns a callable that removes the listener."""
        return self._fsm.subscribe(listener)

    def on_connected(self, listener: ConnectedListener) -> Callable[[], None]:
        """
        Run ``listener`` after every successful (re)connect.

        Coroutine listeners are awaited before the first frame is read.
        """
        self._connected_listeners.append(listener)
        return lambda: self._remove(self._connected_listeners, listener)

    def on_reconnect_failed(self, listener: ReconnectFailedListener) -> Callable[[], None]:
        """Run ``listener`` once automatic reconnection has given up."""
        self._reconnect_failed_listeners.append(listener)
        return lambda: self._remove(self._reconnect_failed_listeners, listener)

    @staticmethod
    def _remove(listeners: list, listener: Any) -> None:
        if listener in listeners:
            listeners.remove(listener)

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    async def connect(self, restaurant_id: str) -> None:
        """
        Start connecting; returns without waiting for the socket.

        No-op while CONNECTED or CONNECTING. Called during a backoff wait,
        the pending retry is replaced by an immediate attempt.
        """
        if self._fsm.state is not ConnectionState.DISCONNECTED:
            if restaurant_id != self._restaurant_id:
                logger.warning(
                    "Already connected to another restaurant, ignoring connect",
                    current_restaurant_id=self._restaurant_id,
                    requested_restaurant_id=restaurant_id,
                )
            return

        await self._cancel_supervisor()
        self._restaurant_id = restaurant_id
        self._generation += 1
        generation = self._generation

        self._fsm.transition(ConnectionState.CONNECTING)
        self._supervisor = asyncio.create_task(
            self._supervise(generation),
            name=f"kitchen-feed-connection-{restaurant_id}",
        )
        logger.info("Connecting to event channel", restaurant_id=restaurant_id, url=self._base_url)

    async def disconnect(self) -> None:
        """
        Close the connection and cancel pending retries.

        Automatic reconnection stays off until connect() is called again.
        """
        self._generation += 1
        await self._cancel_supervisor()

        transport, self._transport = self._transport, None
        self._connected_event.clear()
        if transport is not None:
            await self._close_transport(transport)

        if self._fsm.state is not ConnectionState.DISCONNECTED:
            self._fsm.transition(ConnectionState.DISCONNECTED)
            logger.info("Disconnected from event channel", restaurant_id=self._restaurant_id)

    async def wait_until_connected(self, timeout: float | None = None) -> bool:
        """Wait for CONNECTED; returns False on timeout."""
        if self.is_connected:
            return True
        try:
            await asyncio.wait_for(self._connected_event.wait(), timeout)
        except asyncio.TimeoutError:
            return False
        return self.is_connected

    async def send(self, payload: dict[str, Any]) -> bool:
        """
        Serialize ``payload`` as JSON and write it to the socket.

        Returns:
            False when not connected or the write failed; never raises.
        """
        transport = self._transport
        if transport is None or not self.is_connected:
            logger.warning("Cannot send, not connected", state=self.state.value)
            return False
        try:
            await transport.send(json.dumps(payload))
        except Exception as e:
            logger.warning("Send failed", error=str(e), restaurant_id=self._restaurant_id)
            return False
        return True

    async def _cancel_supervisor(self) -> None:
        task, self._supervisor = self._supervisor, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)

    # ==========================================================================
    # Supervisor
    # ==========================================================================

    def _channel_url(self) -> str:
        return build_channel_url(self._base_url, self._restaurant_id or "", self._token)

    async def _supervise(self, generation: int) -> None:
        """Connect, read, and reconnect until cancelled or out of attempts."""
        reconnects = 0
        while True:
            transport, error = await self._attempt(generation)
            if generation != self._generation:
                return

            if transport is not None:
                reconnects = 0
                error = await self._serve(transport, generation)
                if generation != self._generation:
                    return
                self._transport = None
                self._connected_event.clear()
                self._metrics.increment_connection_drops()

            self._fsm.transition(ConnectionState.DISCONNECTED, error)

            if _close_code(getattr(error, "__cause__", None) or error) in NON_RETRYABLE_CLOSE_CODES:
                logger.error(
                    "Event channel rejected the connection, not retrying",
                    restaurant_id=self._restaurant_id,
                )
                self._give_up(error)
                return

            if not should_retry(reconnects, self._retry.max_attempts):
                self._give_up(ReconnectExhaustedError(reconnects, restaurant_id=self._restaurant_id))
                return

            delay = calculate_delay_with_jitter(reconnects, self._retry)
            reconnects += 1
            logger.warning(
                "Reconnecting to event channel",
                attempt=reconnects,
                max_attempts=self._retry.max_attempts,
                delay=round(delay, 2),
            )
            await self._sleep(delay)
            if generation != self._generation:
                return
            self._fsm.transition(ConnectionState.CONNECTING)

    async def _attempt(self, generation: int) -> tuple[Transport | None, BaseException | None]:
        """One connection attempt. Returns (transport, None) or (None, error)."""
        url = self._channel_url()
        self._metrics.increment_connection_attempts()
        try:
            transport = await self._connector(url)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            self._metrics.increment_connection_failures()
            error = ConnectionFailedError(self._base_url, reason=str(e) or type(e).__name__)
            error.__cause__ = e
            return None, error

        if generation != self._generation:
            # disconnect() won the race
            logger.info("Discarding connection opened after disconnect")
            await self._close_transport(transport)
            return None, None

        self._transport = transport
        self._fsm.transition(ConnectionState.CONNECTED)
        self._connected_event.set()
        logger.info("Connected to event channel", restaurant_id=self._restaurant_id)

        for listener in list(self._connected_listeners):
            try:
                result = listener()
                if inspect.isawaitable(result):
                    await result
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error("Connected listener failed", error=str(e), exc_info=True)
        return transport, None

    async def _serve(self, transport: Transport, generation: int) -> BaseException:
        """Read frames until the socket drops. Returns the drop error."""
        try:
            while True:
                frame = await transport.recv()
                if generation != self._generation:
                    return ConnectionFailedError(self._base_url, reason="superseded")
                self._deliver(frame)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = ConnectionFailedError(
                self._base_url,
                reason=f"connection lost: {str(e) or type(e).__name__}",
                close_code=_close_code(e),
            )
            error.__cause__ = e
            return error

    def _deliver(self, frame: str | bytes) -> None:
        if self._on_message is None:
            return
        try:
            self._on_message(frame)
        except Exception as e:
            logger.error("Message handler failed", error=str(e), exc_info=True)

    def _give_up(self, error: BaseException) -> None:
        self._fsm.record_error(error)
        self._metrics.increment_reconnects_exhausted()
        for listener in list(self._reconnect_failed_listeners):
            try:
                listener(error)
            except Exception as e:
                logger.error("Reconnect-failed listener failed", error=str(e), exc_info=True)

    async def _close_transport(self, transport: Transport) -> None:
        try:
            await asyncio.wait_for(transport.close(), KitchenConstants.CLOSE_TIMEOUT)
        except Exception as e:
            logger.debug("Error closing transport", error=str(e))

    def get_stats(self) -> dict[str, Any]:
        return {
            "state": self.state.value,
            "restaurant_id": self._restaurant_id,
            "generation": self._generation,
            "last_error": str(self.last_error) if self.last_error else None,
        }

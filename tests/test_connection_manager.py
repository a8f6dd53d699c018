"""
Tests for the ConnectionManager supervisor.

Tests verify:
- connect() is idempotent and non-blocking
- Failed attempts and drops are retried with backoff, never faster than the initial delay
- Retries stop after max_attempts with a caller-visible error
- disconnect() is terminal, including against a late-arriving connection
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from websockets.exceptions import ConnectionClosed
from websockets.frames import Close

from kitchen_feed.components.connection.manager import (
    ConnectionManager,
    build_channel_url,
)
from kitchen_feed.components.connection.state import ConnectionState
from kitchen_feed.components.metrics.collector import MetricsCollector
from kitchen_feed.components.resilience.retry import RetryConfig
from shared.utils.exceptions import ConnectionFailedError, ReconnectExhaustedError


RETRY = RetryConfig(initial_delay=0.5, max_delay=4.0, max_attempts=3)


def make_manager(connector, **kwargs) -> ConnectionManager:
    kwargs.setdefault("retry_config", RETRY)
    kwargs.setdefault("sleep", AsyncMock())
    kwargs.setdefault("url", "ws://kitchen.test/ws")
    return ConnectionManager(connector=connector, **kwargs)


class TestChannelUrl:
    def test_adds_restaurant(self):
        assert build_channel_url("ws://h/ws", "r-1") == "ws://h/ws?restaurantId=r-1"

    def test_keeps_existing_query_and_adds_token(self):
        url = build_channel_url("ws://h/ws?v=2", "r-1", token="abc")
        assert url == "ws://h/ws?v=2&restaurantId=r-1&token=abc"


class TestConnect:
    """Happy path and idempotence."""

    @pytest.mark.asyncio
    async def test_connect_reaches_connected(self, connector, run_pending):
        connector.succeed()
        manager = make_manager(connector)

        await manager.connect("rest-1")
        assert manager.state is ConnectionState.CONNECTING

        await run_pending()
        assert manager.state is ConnectionState.CONNECTED
        assert connector.urls == ["ws://kitchen.test/ws?restaurantId=rest-1"]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_connect_is_idempotent(self, connector, run_pending):
        connector.succeed()
        manager = make_manager(connector)

        await manager.connect("rest-1")
        await manager.connect("rest-1")
        await run_pending()
        await manager.connect("rest-1")
        await run_pending()

        assert connector.calls == 1
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_connected_signal_fires_before_frames(self, connector, run_pending):
        transport = connector.succeed()
        transport.push("frame-1")
        order = []
        manager = make_manager(connector, on_message=lambda frame: order.append(frame))

        async def on_connected():
            order.append("connected")

        manager.on_connected(on_connected)
        await manager.connect("rest-1")
        await run_pending()

        assert order == ["connected", "frame-1"]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_wait_until_connected(self, connector):
        connector.succeed()
        manager = make_manager(connector)

        await manager.connect("rest-1")
        assert await manager.wait_until_connected(timeout=1.0) is True
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_wait_until_connected_times_out(self, connector):
        gate = asyncio.Event()

        async def never(url):
            await gate.wait()

        manager = make_manager(never)
        await manager.connect("rest-1")
        assert await manager.wait_until_connected(timeout=0.01) is False
        await manager.disconnect()


class TestMessages:
    """Frame delivery and outbound sends."""

    @pytest.mark.asyncio
    async def test_frames_delivered_in_order(self, connector, run_pending):
        transport = connector.succeed()
        received = []
        manager = make_manager(connector, on_message=received.append)

        await manager.connect("rest-1")
        for frame in ("a", "b", "c"):
            transport.push(frame)
        await run_pending()

        assert received == ["a", "b", "c"]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_reading(self, connector, run_pending):
        transport = connector.succeed()
        handler = MagicMock(side_effect=[RuntimeError("boom"), None])
        manager = make_manager(connector, on_message=handler)

        await manager.connect("rest-1")
        transport.push("bad")
        transport.push("good")
        await run_pending()

        assert handler.call_count == 2
        assert manager.state is ConnectionState.CONNECTED
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_send_serializes_json(self, connector, run_pending):
        transport = connector.succeed()
        manager = make_manager(connector)
        await manager.connect("rest-1")
        await run_pending()

        assert await manager.send({"op": "ping"}) is True
        assert transport.sent == [{"op": "ping"}]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_send_when_disconnected_returns_false(self, connector):
        manager = make_manager(connector)
        assert await manager.send({"op": "ping"}) is False

    @pytest.mark.asyncio
    async def test_send_failure_returns_false(self, connector, run_pending):
        transport = connector.succeed()
        transport.send = AsyncMock(side_effect=ConnectionError("broken pipe"))
        manager = make_manager(connector)
        await manager.connect("rest-1")
        await run_pending()

        assert await manager.send({"op": "ping"}) is False
        await manager.disconnect()


class TestReconnect:
    """Backoff, drops and exhaustion."""

    @pytest.mark.asyncio
    async def test_failed_attempt_is_retried(self, connector, run_pending):
        connector.fail()
        connector.succeed()
        sleep = AsyncMock()
        metrics = MetricsCollector()
        manager = make_manager(connector, sleep=sleep, metrics=metrics)

        await manager.connect("rest-1")
        await run_pending()

        assert manager.state is ConnectionState.CONNECTED
        assert connector.calls == 2
        assert sleep.await_count == 1
        assert sleep.await_args.args[0] >= RETRY.initial_delay
        assert metrics.get_snapshot()["connections_failures"] == 1
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_failure_is_visible_as_state_and_error(self, connector, run_pending):
        gate = asyncio.Event()

        async def blocked_sleep(delay):
            await gate.wait()

        connector.fail()
        manager = make_manager(connector, sleep=blocked_sleep)

        await manager.connect("rest-1")
        await run_pending()

        assert manager.state is ConnectionState.DISCONNECTED
        assert isinstance(manager.last_error, ConnectionFailedError)
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_drop_triggers_reconnect(self, connector, run_pending):
        first = connector.succeed()
        second = connector.succeed()
        states = []
        manager = make_manager(connector)
        manager.subscribe(lambda prev, new, err: states.append(new))

        await manager.connect("rest-1")
        await run_pending()
        first.drop()
        await run_pending()

        assert manager.state is ConnectionState.CONNECTED
        assert connector.transports == [first, second]
        assert states == [
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
            ConnectionState.DISCONNECTED,
            ConnectionState.CONNECTING,
            ConnectionState.CONNECTED,
        ]
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_backoff_never_below_initial_delay(self, connector, run_pending):
        sleep = AsyncMock()
        manager = make_manager(connector, sleep=sleep)

        await manager.connect("rest-1")
        await run_pending()

        delays = [call.args[0] for call in sleep.await_args_list]
        assert len(delays) == RETRY.max_attempts
        assert all(RETRY.initial_delay <= d <= RETRY.max_delay * 1.25 for d in delays)

    @pytest.mark.asyncio
    async def test_gives_up_after_max_attempts(self, connector, run_pending):
        failed = []
        manager = make_manager(connector)
        manager.on_reconnect_failed(failed.append)

        await manager.connect("rest-1")
        await run_pending()

        # Initial attempt plus max_attempts reconnects
        assert connector.calls == RETRY.max_attempts + 1
        assert manager.state is ConnectionState.DISCONNECTED
        assert isinstance(manager.last_error, ReconnectExhaustedError)
        assert manager.last_error.attempts == RETRY.max_attempts
        assert failed == [manager.last_error]

    @pytest.mark.asyncio
    async def test_connect_after_exhaustion_rearms(self, connector, run_pending):
        manager = make_manager(connector)
        await manager.connect("rest-1")
        await run_pending()
        assert manager.state is ConnectionState.DISCONNECTED

        connector.succeed()
        await manager.connect("rest-1")
        await run_pending()
        assert manager.state is ConnectionState.CONNECTED
        await manager.disconnect()

    @pytest.mark.asyncio
    async def test_auth_rejection_is_not_retried(self, connector, run_pending):
        transport = connector.succeed()
        connector.succeed()
        failed = []
        manager = make_manager(connector)
        manager.on_reconnect_failed(failed.append)

        await manager.connect("rest-1")
        await run_pending()
        transport.drop(ConnectionClosed(Close(4001, "unauthorized"), None))
        await run_pending()

        assert manager.state is ConnectionState.DISCONNECTED
        assert connector.calls == 1
        assert len(failed) == 1


class TestDisconnect:
    """Explicit disconnect and the reconnect guard."""

    @pytest.mark.asyncio
    async def test_disconnect_closes_transport(self, connector, run_pending):
        transport = connector.succeed()
        manager = make_manager(connector)
        await manager.connect("rest-1")
        await run_pending()

        await manager.disconnect()

        assert manager.state is ConnectionState.DISCONNECTED
        assert transport.closed

    @pytest.mark.asyncio
    async def test_no_reconnect_after_disconnect(self, connector, run_pending):
        connector.succeed()
        connector.succeed()
        manager = make_manager(connector)
        await manager.connect("rest-1")
        await run_pending()

        await manager.disconnect()
        await run_pending()

        assert connector.calls == 1
        assert manager.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_disconnect_cancels_backoff(self, connector, run_pending):
        gate = asyncio.Event()

        async def blocked_sleep(delay):
            await gate.wait()

        connector.fail()
        connector.succeed()
        manager = make_manager(connector, sleep=blocked_sleep)
        await manager.connect("rest-1")
        await run_pending()

        await manager.disconnect()
        gate.set()
        await run_pending()

        assert connector.calls == 1
        assert manager.state is ConnectionState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_disconnect_during_pending_attempt(self, run_pending):
        release = asyncio.Event()
        attempts = []

        async def slow_connector(url):
            attempts.append(url)
            await release.wait()
            return MagicMock()

        manager = make_manager(slow_connector)
        await manager.connect("rest-1")
        await run_pending()
        assert manager.state is ConnectionState.CONNECTING

        await manager.disconnect()
        release.set()
        await run_pending()

        assert manager.state is ConnectionState.DISCONNECTED
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_late_success_after_disconnect_is_discarded(self, connector, run_pending):
        transport = connector.succeed()
        manager = make_manager(connector)

        async def connector_racing_disconnect(url):
            # disconnect() lands while the handshake is completing
            await manager.disconnect()
            return await connector(url)

        manager._connector = connector_racing_disconnect
        await manager.connect("rest-1")
        await run_pending()

        assert manager.state is ConnectionState.DISCONNECTED
        assert transport.closed
        assert await manager.send({"op": "ping"}) is False

    @pytest.mark.asyncio
    async def test_disconnect_when_idle_is_noop(self, connector):
        manager = make_manager(connector)
        await manager.disconnect()
        assert manager.state is ConnectionState.DISCONNECTED

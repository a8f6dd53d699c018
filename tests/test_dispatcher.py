"""
Tests for event parsing and the EventDispatcher.
"""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from kitchen_feed.components.events import dispatcher as dispatcher_module
from kitchen_feed.components.events.dispatcher import EventDispatcher
from kitchen_feed.components.events.types import KitchenEvent, parse_event
from kitchen_feed.components.metrics.collector import MetricsCollector
from shared.config.constants import EventKind, OrderStatus
from shared.utils import exceptions as exceptions_module
from shared.utils.exceptions import MalformedEventError


class TestKitchenEventParsing:
    """Shape validation per event kind."""

    def test_flat_created(self, order_payload):
        payload = order_payload(order_id="o-1")
        event = KitchenEvent.from_dict({"kind": "order.created", "order": payload})

        assert event.kind is EventKind.ORDER_CREATED
        assert event.order.id == "o-1"
        assert event.order_id == "o-1"
        assert event.patch.id == "o-1"

    def test_envelope_created(self, order_payload):
        payload = order_payload(order_id="o-1")
        event = KitchenEvent.from_dict({
            "event": "order.created",
            "data": {"order": payload},
            "timestamp": "2026-01-15T12:00:00Z",
        })

        assert event.kind is EventKind.ORDER_CREATED
        assert event.order.id == "o-1"
        assert event.timestamp == "2026-01-15T12:00:00Z"

    def test_created_requires_complete_order(self):
        with pytest.raises(MalformedEventError):
            KitchenEvent.from_dict({"kind": "order.created", "order": {"id": "o-1"}})

    def test_updated_accepts_partial_order(self):
        event = KitchenEvent.from_dict({
            "kind": "order.updated",
            "order": {"id": "o-1", "specialInstructions": "no onions"},
        })

        assert event.patch.id == "o-1"
        assert event.patch.special_instructions == "no onions"
        assert event.order is None
        assert event.status is None

    def test_status_changed_with_order_id(self):
        event = KitchenEvent.from_dict({
            "kind": "order.status.changed",
            "orderId": "o-1",
            "status": "READY",
        })

        assert event.order_id == "o-1"
        assert event.status is OrderStatus.READY
        assert event.patch is None

    def test_status_changed_takes_id_from_order(self):
        event = KitchenEvent.from_dict({
            "kind": "order.status.changed",
            "status": "PREPARING",
            "order": {"id": "o-2"},
        })
        assert event.order_id == "o-2"

    def test_status_changed_rejects_mismatched_ids(self):
        with pytest.raises(MalformedEventError):
            KitchenEvent.from_dict({
                "kind": "order.status.changed",
                "orderId": "o-1",
                "status": "READY",
                "order": {"id": "o-2"},
            })

    @pytest.mark.parametrize(
        "payload",
        [
            {"kind": "order.status.changed", "orderId": "o-1"},
            {"kind": "order.status.changed", "orderId": "o-1", "status": "COOKING"},
            {"kind": "order.status.changed", "status": "READY"},
            {"kind": "order.updated"},
            {"kind": "kitchen.notification"},
            {"kind": "kitchen.notification", "message": "   "},
            {"kind": "order.teleported"},
            {"event": "order.created", "data": "nope"},
            {"order": {}},
            ["not", "an", "object"],
        ],
    )
    def test_malformed_payloads(self, payload):
        is_valid, error, event = parse_event(payload)
        assert not is_valid
        assert error
        assert event is None

    def test_notification_level_defaults_to_info(self):
        event = KitchenEvent.from_dict({"kind": "kitchen.notification", "message": "Hi"})
        assert event.level == "info"

    def test_notification_type_field(self):
        event = KitchenEvent.from_dict({
            "event": "kitchen.notification",
            "data": {"message": "Fire at grill", "type": "URGENT"},
        })
        assert event.level == "urgent"

    def test_notification_keeps_message_with_bad_order(self):
        event = KitchenEvent.from_dict({
            "kind": "kitchen.notification",
            "message": "Table 4 waiting",
            "order": {"id": "o-1"},
        })
        assert event.message == "Table 4 waiting"
        assert event.order is None

    def test_to_dict_returns_normalized_copy(self):
        event = KitchenEvent.from_dict({"event": "kitchen.notification", "data": {"message": "Hi"}})

        payload = event.to_dict()
        payload["message"] = "changed"

        assert event.to_dict() == {"message": "Hi", "kind": "kitchen.notification"}
        assert not event.is_order_event

    def test_order_kinds_are_order_events(self):
        event = KitchenEvent.from_dict({"kind": "order.status.changed", "orderId": "o-1", "status": "READY"})
        assert event.is_order_event

    def test_event_is_immutable(self):
        event = KitchenEvent.from_dict({"kind": "kitchen.notification", "message": "Hi"})
        with pytest.raises(AttributeError):
            event.message = "changed"


class TestDispatch:
    """Routing of inbound frames."""

    def test_routes_to_registered_kind(self, order_payload):
        dispatcher = EventDispatcher("rest-1")
        created, updated = MagicMock(), MagicMock()
        dispatcher.on(EventKind.ORDER_CREATED, created)
        dispatcher.on(EventKind.ORDER_UPDATED, updated)

        dispatcher.dispatch_raw(json.dumps({"kind": "order.created", "order": order_payload()}))

        created.assert_called_once()
        updated.assert_not_called()

    def test_delivery_in_arrival_order_across_kinds(self, order_payload):
        dispatcher = EventDispatcher("rest-1")
        seen = []
        for kind in EventKind:
            dispatcher.on(kind, lambda e: seen.append(e.kind))

        frames = [
            {"kind": "order.created", "order": order_payload(order_id="o-1")},
            {"kind": "kitchen.notification", "message": "Hi"},
            {"kind": "order.status.changed", "orderId": "o-1", "status": "PREPARING"},
            {"kind": "order.updated", "order": {"id": "o-1"}},
        ]
        for frame in frames:
            dispatcher.dispatch_raw(json.dumps(frame))

        assert seen == [
            EventKind.ORDER_CREATED,
            EventKind.KITCHEN_NOTIFICATION,
            EventKind.ORDER_STATUS_CHANGED,
            EventKind.ORDER_UPDATED,
        ]

    def test_every_callback_receives_event(self):
        dispatcher = EventDispatcher("rest-1")
        first, second = MagicMock(), MagicMock()
        dispatcher.on("kitchen.notification", first)
        dispatcher.on("kitchen.notification", second)

        event = dispatcher.dispatch_raw('{"kind": "kitchen.notification", "message": "Hi"}')

        first.assert_called_once_with(event)
        second.assert_called_once_with(event)

    def test_failing_callback_does_not_block_others(self):
        metrics = MetricsCollector()
        dispatcher = EventDispatcher("rest-1", metrics=metrics)
        survivor = MagicMock()
        dispatcher.on("kitchen.notification", MagicMock(side_effect=RuntimeError("boom")))
        dispatcher.on("kitchen.notification", survivor)

        dispatcher.dispatch_raw('{"kind": "kitchen.notification", "message": "Hi"}')

        survivor.assert_called_once()
        assert metrics.get_snapshot()["events_callback_errors"] == 1

    def test_off_and_unsubscribe(self):
        dispatcher = EventDispatcher("rest-1")
        a, b = MagicMock(), MagicMock()
        unsubscribe = dispatcher.on("kitchen.notification", a)
        dispatcher.on("kitchen.notification", b)

        unsubscribe()
        dispatcher.off("kitchen.notification", b)
        dispatcher.off("kitchen.notification", b)
        dispatcher.dispatch_raw('{"kind": "kitchen.notification", "message": "Hi"}')

        a.assert_not_called()
        b.assert_not_called()

    def test_on_rejects_unknown_kind(self):
        dispatcher = EventDispatcher("rest-1")
        with pytest.raises(ValueError):
            dispatcher.on("order.deleted", MagicMock())


class TestDrops:
    """Malformed input is dropped, counted and never raised."""

    def test_invalid_json(self):
        metrics = MetricsCollector()
        dispatcher = EventDispatcher("rest-1", metrics=metrics)

        assert dispatcher.dispatch_raw("{not json") is None
        assert metrics.get_snapshot()["events_invalid_schema"] == 1

    def test_deeply_nested_json(self):
        metrics = MetricsCollector()
        dispatcher = EventDispatcher("rest-1", metrics=metrics)

        assert dispatcher.dispatch_raw("[" * 50_000) is None
        assert metrics.get_snapshot()["events_invalid_schema"] == 1

    def test_unknown_kind(self):
        metrics = MetricsCollector()
        dispatcher = EventDispatcher("rest-1", metrics=metrics)
        callback = MagicMock()
        for kind in EventKind:
            dispatcher.on(kind, callback)

        assert dispatcher.dispatch_raw('{"kind": "order.deleted", "order": {}}') is None
        callback.assert_not_called()
        assert metrics.get_snapshot()["events_unknown_kind"] == 1

    def test_bad_shape(self):
        metrics = MetricsCollector()
        dispatcher = EventDispatcher("rest-1", metrics=metrics)

        assert dispatcher.dispatch_raw('{"kind": "order.status.changed", "orderId": "o-1"}') is None
        assert metrics.get_snapshot()["events_invalid_schema"] == 1

    def test_oversized(self):
        metrics = MetricsCollector()
        dispatcher = EventDispatcher("rest-1", metrics=metrics, max_message_size=32)

        frame = json.dumps({"kind": "kitchen.notification", "message": "x" * 100})
        assert dispatcher.dispatch_raw(frame) is None
        assert metrics.get_snapshot()["events_oversized"] == 1

    def test_malformed_event_error_does_not_log_itself(self):
        with patch.object(exceptions_module, "logger") as logger:
            error = MalformedEventError("missing 'kind'")

        assert error.detail == "Malformed event: missing 'kind'"
        assert logger.method_calls == []

    def test_repeated_drops_are_logged_sampled(self):
        dispatcher = EventDispatcher("rest-1", metrics=MetricsCollector())

        with patch.object(exceptions_module, "logger") as error_logger, \
                patch.object(dispatcher_module, "logger") as dispatch_logger:
            for _ in range(3):
                dispatcher.dispatch_raw('{"kind": "order.teleported"}')

        assert error_logger.method_calls == []
        dispatch_logger.warning.assert_called_once()
        assert dispatch_logger.warning.call_args.args[0] == "Dropping inbound event"

    def test_bytes_frames_accepted(self):
        dispatcher = EventDispatcher("rest-1")
        event = dispatcher.dispatch_raw(b'{"kind": "kitchen.notification", "message": "Hi"}')
        assert event is not None

    def test_invalid_utf8_dropped(self):
        dispatcher = EventDispatcher("rest-1")
        assert dispatcher.dispatch_raw(b"\xff\xfe\x00") is None


class TestCommands:
    """Outbound commands."""

    @pytest.mark.asyncio
    async def test_update_order_status_payload(self):
        sender = AsyncMock(return_value=True)
        dispatcher = EventDispatcher("rest-1", sender=sender)

        assert await dispatcher.update_order_status("o-1", "READY") is True

        payload = sender.await_args.args[0]
        assert payload["op"] == "updateOrderStatus"
        assert payload["orderId"] == "o-1"
        assert payload["status"] == "READY"
        assert payload["restaurantId"] == "rest-1"
        assert "timestamp" in payload

    @pytest.mark.asyncio
    async def test_update_does_not_dispatch_locally(self):
        sender = AsyncMock(return_value=True)
        dispatcher = EventDispatcher("rest-1", sender=sender)
        callback = MagicMock()
        dispatcher.on(EventKind.ORDER_STATUS_CHANGED, callback)

        await dispatcher.update_order_status("o-1", OrderStatus.PREPARING)

        callback.assert_not_called()

    @pytest.mark.asyncio
    async def test_backward_transition_is_still_sent(self):
        sender = AsyncMock(return_value=True)
        dispatcher = EventDispatcher("rest-1", sender=sender)
        assert await dispatcher.update_order_status("o-1", OrderStatus.PENDING) is True

    @pytest.mark.asyncio
    async def test_invalid_status_raises(self):
        dispatcher = EventDispatcher("rest-1", sender=AsyncMock(return_value=True))
        with pytest.raises(ValueError):
            await dispatcher.update_order_status("o-1", "COOKING")

    @pytest.mark.asyncio
    async def test_no_sender_returns_false(self):
        metrics = MetricsCollector()
        dispatcher = EventDispatcher("rest-1", metrics=metrics)

        assert await dispatcher.update_order_status("o-1", "READY") is False
        assert metrics.get_snapshot()["commands_rejected"] == 1

    @pytest.mark.asyncio
    async def test_sender_not_connected_returns_false(self):
        dispatcher = EventDispatcher("rest-1", sender=AsyncMock(return_value=False))
        assert await dispatcher.update_order_status("o-1", "READY") is False

    @pytest.mark.asyncio
    async def test_sender_error_returns_false(self):
        dispatcher = EventDispatcher("rest-1", sender=AsyncMock(side_effect=OSError("down")))
        assert await dispatcher.update_order_status("o-1", "READY") is False

    @pytest.mark.asyncio
    async def test_kitchen_notification_payload(self):
        sender = AsyncMock(return_value=True)
        metrics = MetricsCollector()
        dispatcher = EventDispatcher("rest-1", sender=sender, metrics=metrics)

        assert await dispatcher.send_kitchen_notification("86 the soup", "urgent") is True

        payload = sender.await_args.args[0]
        assert payload["event"] == "kitchen.notification"
        assert payload["data"] == {"restaurantId": "rest-1", "message": "86 the soup", "type": "urgent"}
        assert metrics.get_snapshot()["commands_sent"] == 1

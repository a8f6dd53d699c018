"""
Event Value Objects for the kitchen feed.

Inbound events are validated once, at construction, and then handed to
callbacks as immutable objects. Two wire shapes are accepted:

    {"kind": "order.created", "order": {...}}
    {"event": "order.created", "data": {"order": {...}}, "timestamp": "..."}

Both normalize to the same KitchenEvent.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Self

from pydantic import ValidationError

from shared.config.constants import EventKind, OrderStatus, VALID_EVENT_KINDS
from shared.config.logging import get_logger
from shared.utils.exceptions import MalformedEventError
from kitchen_feed.components.orders.models import Order, OrderPatch

logger = get_logger(__name__)

NOTIFICATION_LEVELS: frozenset[str] = frozenset({"info", "success", "urgent", "error"})


def _normalize_envelope(data: dict[str, Any]) -> dict[str, Any]:
    """Flatten the ``{"event", "data"}`` envelope into the ``{"kind", ...}`` form."""
    if "kind" in data:
        return data
    if "event" not in data:
        raise MalformedEventError("missing 'kind'")

    body = data.get("data")
    if body is None:
        body = {}
    if not isinstance(body, dict):
        raise MalformedEventError("'data' must be an object", kind=str(data.get("event")))

    flat = dict(body)
    flat["kind"] = data["event"]
    if "timestamp" in data and "timestamp" not in flat:
        flat["timestamp"] = data["timestamp"]
    return flat


@dataclass(frozen=True, slots=True)
class KitchenEvent:
    """
    Immutable value object for one inbound kitchen event.

    Attributes:
        kind: Event kind.
        order: Full order (order.created; optional on other kinds).
        patch: Partial order carrying the changed fields (update kinds).
        order_id: Order the event refers to, when any.
        status: New status (order.status.changed).
        message: Human-readable text (kitchen.notification).
        level: Notification level: info, success, urgent or error.
        timestamp: Server timestamp, if sent.
        raw_data: Normalized copy of the payload.
    """

    kind: EventKind
    order: Order | None = None
    patch: OrderPatch | None = None
    order_id: str | None = None
    status: OrderStatus | None = None
    message: str | None = None
    level: str | None = None
    timestamp: str | None = None
    raw_data: dict[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Self:
        """
        Create a KitchenEvent from a decoded JSON payload.

        Raises:
            MalformedEventError: If the payload has an unknown kind or the
                wrong shape for its kind.
        """
        if not isinstance(data, dict):
            raise MalformedEventError("event must be a JSON object")

        data = _normalize_envelope(data)
        kind_value = data.get("kind")
        if not isinstance(kind_value, str) or kind_value not in VALID_EVENT_KINDS:
            raise MalformedEventError("unknown event kind", kind=str(kind_value))
        kind = EventKind(kind_value)

        timestamp = data.get("timestamp")
        if timestamp is not None and not isinstance(timestamp, str):
            timestamp = str(timestamp)

        raw_data = copy.deepcopy(data)

        if kind is EventKind.ORDER_CREATED:
            order = cls._parse_order(data, kind)
            return cls(
                kind=kind,
                order=order,
                patch=OrderPatch.from_order(order),
                order_id=order.id,
                timestamp=timestamp,
                raw_data=raw_data,
            )

        if kind is EventKind.ORDER_UPDATED:
            patch = cls._parse_patch(data, kind, required=True)
            return cls(
                kind=kind,
                patch=patch,
                order=cls._full_order_or_none(patch),
                order_id=patch.id,
                status=patch.status,
                timestamp=timestamp,
                raw_data=raw_data,
            )

        if kind is EventKind.ORDER_STATUS_CHANGED:
            status = cls._parse_status(data.get("status"), kind)
            patch = cls._parse_patch(data, kind, required=False)
            order_id = data.get("orderId", data.get("order_id"))
            if order_id is None and patch is not None:
                order_id = patch.id
            if order_id is None:
                raise MalformedEventError("missing 'orderId'", kind=kind.value)
            order_id = str(order_id)
            if patch is not None and patch.id != order_id:
                raise MalformedEventError("'orderId' does not match 'order.id'", kind=kind.value)
            return cls(
                kind=kind,
                patch=patch,
                order=cls._full_order_or_none(patch, status),
                order_id=order_id,
                status=status,
                timestamp=timestamp,
                raw_data=raw_data,
            )

        # kitchen.notification
        message = data.get("message")
        if not isinstance(message, str) or not message.strip():
            raise MalformedEventError("missing 'message'", kind=kind.value)
        level = str(data.get("type", data.get("level", "info"))).lower()
        if level not in NOTIFICATION_LEVELS:
            level = "info"
        order = None
        if data.get("order") is not None:
            try:
                order = Order.model_validate(data["order"])
            except ValidationError:
                # The message still matters without its order reference
                logger.debug("Notification carries an unusable order", kind=kind.value)
        return cls(
            kind=kind,
            order=order,
            order_id=order.id if order is not None else None,
            message=message,
            level=level,
            timestamp=timestamp,
            raw_data=raw_data,
        )

    # ==========================================================================
    # Field parsers
    # ==========================================================================

    @staticmethod
    def _parse_order(data: dict[str, Any], kind: EventKind) -> Order:
        raw = data.get("order")
        if raw is None:
            raise MalformedEventError("missing 'order'", kind=kind.value)
        try:
            return Order.model_validate(raw)
        except ValidationError as e:
            raise MalformedEventError(
                f"invalid order ({e.error_count()} errors)", kind=kind.value
            ) from e

    @staticmethod
    def _parse_patch(data: dict[str, Any], kind: EventKind, required: bool) -> OrderPatch | None:
        raw = data.get("order")
        if raw is None:
            if required:
                raise MalformedEventError("missing 'order'", kind=kind.value)
            return None
        try:
            return OrderPatch.model_validate(raw)
        except ValidationError as e:
            raise MalformedEventError(
                f"invalid order ({e.error_count()} errors)", kind=kind.value
            ) from e

    @staticmethod
    def _parse_status(value: Any, kind: EventKind) -> OrderStatus:
        try:
            return OrderStatus(value)
        except ValueError as e:
            raise MalformedEventError(f"invalid status {value!r}", kind=kind.value) from e

    @staticmethod
    def _full_order_or_none(
        patch: OrderPatch | None,
        status: OrderStatus | None = None,
    ) -> Order | None:
        """Full order view of a patch, when it happens to carry every field."""
        if patch is None:
            return None
        fields = patch.model_dump(exclude_unset=True)
        if status is not None:
            fields["status"] = status
        try:
            return Order.model_validate(fields)
        except ValidationError:
            return None

    # ==========================================================================
    # Accessors
    # ==========================================================================

    def to_dict(self) -> dict[str, Any]:
        """Return a copy of the normalized payload."""
        return copy.deepcopy(self.raw_data)

    @property
    def is_order_event(self) -> bool:
        return self.kind is not EventKind.KITCHEN_NOTIFICATION


def parse_event(data: Any) -> tuple[bool, str | None, KitchenEvent | None]:
    """
    Pure validation of an event payload.

    Returns:
        Tuple of (is_valid, error_message, event_object).
    """
    try:
        event = KitchenEvent.from_dict(data)
        return True, None, event
    except MalformedEventError as e:
        return False, e.reason, None

"""
Order schemas for the kitchen pipeline.

The backend speaks camelCase JSON; models accept both the wire names and
the Python field names. Timestamps without a timezone are taken as UTC.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from shared.config.constants import ACTIVE_ORDER_STATUSES, OrderStatus

# Order fields the backend may set back to null
CLEARABLE_ORDER_FIELDS = frozenset({"customer_id", "table_number", "special_instructions"})


class KitchenModel(BaseModel):
    """Base for wire models: camelCase aliases, ids coerced to str."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
        extra="ignore",
    )


def _as_utc(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class OrderItem(KitchenModel):
    """A single line of an order. Never mutated by the kitchen."""
    id: str
    dish_id: str
    quantity: int = Field(ge=1)
    price: float = Field(ge=0)
    order_id: Optional[str] = None
    dish_name: Optional[str] = None


class Order(KitchenModel):
    """Cached copy of a backend order."""
    id: str
    order_number: str
    restaurant_id: str
    status: OrderStatus
    customer_id: Optional[str] = None
    table_number: Optional[str] = None
    special_instructions: Optional[str] = None
    items: List[OrderItem] = Field(default_factory=list)
    total_price: float = 0.0
    created_at: datetime
    updated_at: datetime

    @field_validator("created_at", "updated_at")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @property
    def is_active(self) -> bool:
        """True while the kitchen still has to act on the order."""
        return self.status in ACTIVE_ORDER_STATUSES

    def merged(self, patch: OrderPatch) -> Order:
        """
        Return a copy with the fields explicitly set on ``patch`` applied.

        ``created_at`` is immutable and is never taken from a patch. A
        ``null`` sent for a required field leaves it unchanged; only the
        optional fields can be cleared.

        Raises:
            pydantic.ValidationError: If the merged order is invalid.
        """
        update = {
            name: value
            for name, value in patch.model_dump(exclude_unset=True).items()
            if value is not None or name in CLEARABLE_ORDER_FIELDS
        }
        update.pop("id", None)
        update.pop("created_at", None)
        return Order.model_validate({**self.model_dump(), **update})


class OrderPatch(KitchenModel):
    """
    Partial order carried by update events.

    Only ``id`` is required; fields that were not sent stay unset and are
    left alone when merged into the cached order.
    """
    id: str
    order_number: Optional[str] = None
    restaurant_id: Optional[str] = None
    status: Optional[OrderStatus] = None
    customer_id: Optional[str] = None
    table_number: Optional[str] = None
    special_instructions: Optional[str] = None
    items: Optional[List[OrderItem]] = None
    total_price: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @field_validator("created_at", "updated_at")
    @classmethod
    def assume_utc(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value)

    @classmethod
    def from_order(cls, order: Order) -> OrderPatch:
        """Patch that sets every field of ``order``."""
        return cls.model_validate(order.model_dump())

    def to_order(self) -> Order:
        """
        Build a full order from this patch.

        Raises:
            pydantic.ValidationError: If required order fields were not sent.
        """
        return Order.model_validate(self.model_dump(exclude_unset=True))

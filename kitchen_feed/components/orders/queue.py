"""
Order Queue Model.

Holds the kitchen's active orders (PENDING and PREPARING) keyed by id,
built from an initial snapshot plus live event deltas.

Rules:
- One entry per order id. A create for a known id is treated as an update.
- An incoming representation older than the cached one (by updated_at) is ignored.
- Orders that reach READY, DELIVERED or CANCELLED leave the set.
- An update for an unknown order is inserted when it carries a complete,
  active order; otherwise it is ignored.
- The materialized queue is always sorted by (created_at, id), oldest first.

Usage:
    queue = OrderQueue("rest-1")
    queue.load(await client.list_orders("rest-1"))
    queue.apply_created(order)
    queue.snapshot(StatusFilter.PENDING)
    queue.counts()  # {"ALL": 3, "PENDING": 2, "PREPARING": 1}
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Iterable

from pydantic import ValidationError

from shared.config.constants import ACTIVE_ORDER_STATUSES, OrderStatus
from shared.config.logging import get_logger
from kitchen_feed.components.orders.models import Order, OrderPatch

logger = get_logger(__name__)


class StatusFilter(str, Enum):
    """Status projections offered to the kitchen display."""

    ALL = "ALL"
    PENDING = "PENDING"
    PREPARING = "PREPARING"


class ChangeType(str, Enum):
    """What a single mutation did to the active set."""

    ADDED = "added"
    UPDATED = "updated"
    REMOVED = "removed"
    IGNORED = "ignored"


@dataclass(frozen=True, slots=True)
class QueueChange:
    """
    Result of applying one snapshot entry or event to the queue.

    Attributes:
        change: What happened.
        order_id: Order the change refers to.
        order: Representation after the change; for REMOVED, the final
            representation that left the set; None when nothing is known.
        previous_status: Status before the change, if the order was cached.
    """

    change: ChangeType
    order_id: str
    order: Order | None = None
    previous_status: OrderStatus | None = None

    @property
    def is_mutation(self) -> bool:
        return self.change is not ChangeType.IGNORED


QueueListener = Callable[[QueueChange], None]


class OrderQueue:
    """
    In-memory active-order set for one restaurant.

    Only the event handlers and the initial load write to it; every other
    component reads snapshots.
    """

    def __init__(self, restaurant_id: str | None = None):
        """
        Args:
            restaurant_id: When set, orders belonging to another restaurant
                are ignored.
        """
        self._restaurant_id = restaurant_id
        self._orders: dict[str, Order] = {}
        self._counts: dict[str, int] = self._empty_counts()
        self._listeners: list[QueueListener] = []

    # ==========================================================================
    # Reads
    # ==========================================================================

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: object) -> bool:
        return order_id in self._orders

    def get(self, order_id: str) -> Order | None:
        return self._orders.get(order_id)

    @property
    def order_ids(self) -> frozenset[str]:
        return frozenset(self._orders)

    def snapshot(self, status_filter: StatusFilter | str = StatusFilter.ALL) -> list[Order]:
        """
        Materialize the queue, oldest first.

        Filtering is a projection; it never touches the underlying set.
        """
        status_filter = StatusFilter(status_filter)
        orders: Iterable[Order] = self._orders.values()
        if status_filter is not StatusFilter.ALL:
            wanted = OrderStatus(status_filter.value)
            orders = (o for o in orders if o.status == wanted)
        return sorted(orders, key=lambda o: (o.created_at, o.id))

    def counts(self) -> dict[str, int]:
        """Per-status counts plus the total, as of the last change."""
        return dict(self._counts)

    # ==========================================================================
    # Listeners
    # ==========================================================================

    def subscribe(self, listener: QueueListener) -> Callable[[], None]:
        """
        Register a listener for every mutation (IGNORED results are not sent).

        Returns:
            Callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ==========================================================================
    # Writes
    # ==========================================================================

    def load(
        self,
        orders: Iterable[Order],
        fetched_at: datetime | None = None,
    ) -> list[QueueChange]:
        """
        Replace the active set with the active subset of a full snapshot.

        Cached entries newer than their snapshot counterpart are kept. Cached
        entries missing from the snapshot are kept only when they were
        updated after ``fetched_at`` (they arrived by event while the fetch
        was in flight); without ``fetched_at`` they are dropped.

        Returns:
            The mutations performed, in order.
        """
        changes: list[QueueChange] = []
        seen: set[str] = set()

        for order in orders:
            if not self._belongs_here(order):
                continue
            seen.add(order.id)
            change = self._upsert(order)
            if change.is_mutation:
                changes.append(change)

        for order_id in list(self._orders):
            if order_id in seen:
                continue
            cached = self._orders[order_id]
            if fetched_at is not None and cached.updated_at > fetched_at:
                continue
            changes.append(self._remove(order_id))

        self._recount()
        logger.info(
            "Order queue loaded",
            restaurant_id=self._restaurant_id,
            active=len(self._orders),
            changes=len(changes),
        )
        for change in changes:
            self._notify(change)
        return changes

    def apply_created(self, order: Order) -> QueueChange:
        """Add a newly created order; an already-known id is overwritten."""
        if not self._belongs_here(order):
            return QueueChange(ChangeType.IGNORED, order.id, order)
        return self._commit(self._upsert(order))

    def apply_updated(self, patch: OrderPatch) -> QueueChange:
        """Merge an update into the cached order, inserting or removing as needed."""
        if patch.restaurant_id and not self._belongs_here(patch):
            return QueueChange(ChangeType.IGNORED, patch.id)

        cached = self._orders.get(patch.id)
        if cached is not None:
            if patch.updated_at is not None and patch.updated_at < cached.updated_at:
                logger.debug(
                    "Ignoring stale order update",
                    order_id=patch.id,
                    cached_updated_at=cached.updated_at,
                    incoming_updated_at=patch.updated_at,
                )
                return QueueChange(ChangeType.IGNORED, patch.id, cached, cached.status)
            try:
                merged = cached.merged(patch)
            except ValidationError as e:
                logger.warning(
                    "Order update does not merge into a valid order",
                    order_id=patch.id,
                    errors=e.error_count(),
                )
                return QueueChange(ChangeType.IGNORED, patch.id, cached, cached.status)
            return self._commit(self._upsert(merged))

        # Not cached: nothing to remove for terminal statuses
        if patch.status is not None and patch.status not in ACTIVE_ORDER_STATUSES:
            return QueueChange(ChangeType.IGNORED, patch.id)

        try:
            order = patch.to_order()
        except ValidationError as e:
            logger.warning(
                "Update for unknown order lacks fields to insert it",
                order_id=patch.id,
                errors=e.error_count(),
            )
            return QueueChange(ChangeType.IGNORED, patch.id)
        return self._commit(self._upsert(order))

    def apply_status_changed(
        self,
        order_id: str,
        status: OrderStatus | str,
        patch: OrderPatch | None = None,
    ) -> QueueChange:
        """Apply a confirmed status transition, with any order fields that came with it."""
        fields = patch.model_dump(exclude_unset=True) if patch is not None else {}
        fields["id"] = order_id
        fields["status"] = OrderStatus(status)
        return self.apply_updated(OrderPatch.model_validate(fields))

    # ==========================================================================
    # Internals
    # ==========================================================================

    def _belongs_here(self, order: Order | OrderPatch) -> bool:
        if self._restaurant_id is None or order.restaurant_id in (None, self._restaurant_id):
            return True
        logger.warning(
            "Ignoring order for another restaurant",
            order_id=order.id,
            order_restaurant_id=order.restaurant_id,
            restaurant_id=self._restaurant_id,
        )
        return False

    def _upsert(self, order: Order) -> QueueChange:
        """Insert, replace or remove without recounting or notifying."""
        cached = self._orders.get(order.id)
        previous_status = cached.status if cached is not None else None

        if not order.is_active:
            if cached is None:
                return QueueChange(ChangeType.IGNORED, order.id, order)
            del self._orders[order.id]
            return QueueChange(ChangeType.REMOVED, order.id, order, previous_status)

        if cached is None:
            self._orders[order.id] = order
            return QueueChange(ChangeType.ADDED, order.id, order)

        if order.updated_at < cached.updated_at:
            return QueueChange(ChangeType.IGNORED, order.id, cached, previous_status)

        self._orders[order.id] = order
        return QueueChange(ChangeType.UPDATED, order.id, order, previous_status)

    def _remove(self, order_id: str) -> QueueChange:
        order = self._orders.pop(order_id)
        return QueueChange(ChangeType.REMOVED, order_id, order, order.status)

    def _commit(self, change: QueueChange) -> QueueChange:
        if change.is_mutation:
            self._recount()
            logger.debug(
                "Order queue changed",
                change=change.change.value,
                order_id=change.order_id,
                active=len(self._orders),
            )
            self._notify(change)
        return change

    def _recount(self) -> None:
        counts = self._empty_counts()
        for order in self._orders.values():
            counts[order.status.value] += 1
        counts[StatusFilter.ALL.value] = len(self._orders)
        self._counts = counts

    def _notify(self, change: QueueChange) -> None:
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                logger.error(
                    "Queue listener failed",
                    order_id=change.order_id,
                    error=str(e),
                    exc_info=True,
                )

    @staticmethod
    def _empty_counts() -> dict[str, int]:
        return {
            StatusFilter.ALL.value: 0,
            StatusFilter.PENDING.value: 0,
            StatusFilter.PREPARING.value: 0,
        }

"""
SLA Timer.

Elapsed time since an order was created, bucketed into a severity:

    elapsed < 10 min         -> NORMAL
    10 min <= elapsed < 20   -> WARNING
    elapsed >= 20 min        -> CRITICAL

Thresholds do not depend on order status. One SlaScheduler ticks for every
tracked order instead of a timer per order.
"""

from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable

from shared.config.logging import get_logger
from shared.config.settings import settings
from kitchen_feed.components.core.constants import KitchenConstants

logger = get_logger(__name__)


class SlaSeverity(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    CRITICAL = "critical"


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def elapsed_seconds(created_at: datetime, now: datetime | None = None) -> int:
    """Whole seconds since ``created_at``; clock skew never yields a negative value."""
    if now is None:
        now = utc_now()
    if created_at.tzinfo is None:
        created_at = created_at.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return max(0, math.floor((now - created_at).total_seconds()))


def severity_for(elapsed: int) -> SlaSeverity:
    if elapsed >= KitchenConstants.SLA_CRITICAL_SECONDS:
        return SlaSeverity.CRITICAL
    if elapsed >= KitchenConstants.SLA_WARNING_SECONDS:
        return SlaSeverity.WARNING
    return SlaSeverity.NORMAL


def format_duration(seconds: int) -> str:
    """
    Render a duration for the order card.

    >>> format_duration(65)
    '1:05'
    >>> format_duration(3605)
    '1:00:05'
    """
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


@dataclass(frozen=True, slots=True)
class SlaReading:
    """Elapsed time and severity of one order at one instant."""

    order_id: str
    created_at: datetime
    elapsed: int
    severity: SlaSeverity

    @property
    def display(self) -> str:
        return format_duration(self.elapsed)

    @classmethod
    def compute(cls, order_id: str, created_at: datetime, now: datetime | None = None) -> SlaReading:
        elapsed = elapsed_seconds(created_at, now)
        return cls(order_id, created_at, elapsed, severity_for(elapsed))


TickListener = Callable[[dict[str, SlaReading]], None]


class SlaScheduler:
    """
    Single shared ticker that recomputes every tracked order.

    The asyncio task only exists between start() and stop(); tick() can be
    driven by hand with an explicit ``now``.
    """

    def __init__(
        self,
        interval: float | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._interval = interval if interval is not None else settings.sla_tick_interval
        if self._interval <= 0:
            self._interval = KitchenConstants.SLA_TICK_INTERVAL
        self._clock = clock
        self._tracked: dict[str, datetime] = {}
        self._readings: dict[str, SlaReading] = {}
        self._listeners: list[TickListener] = []
        self._task: asyncio.Task[None] | None = None

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def tracked_count(self) -> int:
        return len(self._tracked)

    def track(self, order_id: str, created_at: datetime) -> SlaReading:
        """Start (or keep) tracking an order and return its current reading."""
        self._tracked[order_id] = created_at
        reading = SlaReading.compute(order_id, created_at, self._clock())
        self._readings[order_id] = reading
        return reading

    def untrack(self, order_id: str) -> None:
        self._tracked.pop(order_id, None)
        self._readings.pop(order_id, None)

    def clear(self) -> None:
        self._tracked.clear()
        self._readings.clear()

    def reading(self, order_id: str) -> SlaReading | None:
        return self._readings.get(order_id)

    def readings(self) -> dict[str, SlaReading]:
        """Latest reading per tracked order, as of the last tick."""
        return dict(self._readings)

    def subscribe(self, listener: TickListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def tick(self, now: datetime | None = None) -> dict[str, SlaReading]:
        """Recompute all readings once and notify listeners."""
        if now is None:
            now = self._clock()
        self._readings = {
            order_id: SlaReading.compute(order_id, created_at, now)
            for order_id, created_at in self._tracked.items()
        }
        readings = dict(self._readings)
        for listener in list(self._listeners):
            try:
                listener(readings)
            except Exception as e:
                logger.error("SLA tick listener failed", error=str(e), exc_info=True)
        return readings

    def start(self) -> None:
        """Start the background ticker; no-op if already running."""
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="kitchen-feed-sla-ticker")
        logger.debug("SLA ticker started", interval=self._interval)

    async def stop(self) -> None:
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        logger.debug("SLA ticker stopped")

    async def _run(self) -> None:
        while True:
            self.tick()
            await asyncio.sleep(self._interval)

    def get_stats(self) -> dict[str, int]:
        counts = {severity.value: 0 for severity in SlaSeverity}
        for reading in self._readings.values():
            counts[reading.severity.value] += 1
        counts["tracked"] = len(self._tracked)
        return counts

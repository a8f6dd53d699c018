"""
Pytest configuration and fixtures for kitchen feed tests.
"""

import asyncio
import itertools
import json
from collections import deque
from datetime import datetime, timedelta, timezone

import pytest

from kitchen_feed.components.orders.models import Order


# Fixed reference instant for deterministic timestamps
NOW = datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc)

RESTAURANT_ID = "rest-1"

_id_counter = itertools.count(1)


def _iso(value: datetime) -> str:
    return value.isoformat().replace("+00:00", "Z")


# =============================================================================
# Order factories
# =============================================================================


def build_payload(
    order_id: str | None = None,
    status: str = "PENDING",
    created_at: datetime | None = None,
    updated_at: datetime | None = None,
    restaurant_id: str = RESTAURANT_ID,
    **overrides,
) -> dict:
    """An order as the backend sends it (camelCase)."""
    n = next(_id_counter)
    created_at = created_at or NOW - timedelta(minutes=3)
    payload = {
        "id": order_id or f"ord-{n}",
        "orderNumber": f"{1000 + n}",
        "restaurantId": restaurant_id,
        "status": status,
        "tableNumber": "7",
        "items": [
            {"id": f"item-{n}", "dishId": "dish-1", "quantity": 2, "price": 9.5, "dishName": "Soup"},
        ],
        "specialInstructions": None,
        "totalPrice": 19.0,
        "createdAt": _iso(created_at),
        "updatedAt": _iso(updated_at or created_at),
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def order_payload():
    """Factory for camelCase order dicts."""
    return build_payload


@pytest.fixture
def make_order():
    """Factory for validated Order models."""

    def _make(*args, **kwargs) -> Order:
        return Order.model_validate(build_payload(*args, **kwargs))

    return _make


# =============================================================================
# Transport fakes
# =============================================================================


class FakeTransport:
    """In-memory stand-in for a websockets client connection."""

    def __init__(self):
        self.sent: list[dict] = []
        self.closed = False
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def send(self, message: str) -> None:
        if self.closed:
            raise ConnectionError("transport closed")
        self.sent.append(json.loads(message))

    async def recv(self):
        item = await self._inbox.get()
        if isinstance(item, BaseException):
            raise item
        return item

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._inbox.put_nowait(ConnectionError("transport closed"))

    def push(self, frame) -> None:
        """Queue an inbound frame; dicts are JSON-encoded."""
        if isinstance(frame, dict):
            frame = json.dumps(frame)
        self._inbox.put_nowait(frame)

    def drop(self, error: BaseException | None = None) -> None:
        """Simulate the server side going away."""
        self._inbox.put_nowait(error or ConnectionResetError("connection reset"))


class FakeConnector:
    """
    Connector returning scripted outcomes in order.

    Once the script runs out, every attempt is refused.
    """

    def __init__(self):
        self.outcomes: deque = deque()
        self.urls: list[str] = []
        self.transports: list[FakeTransport] = []

    def succeed(self) -> FakeTransport:
        transport = FakeTransport()
        self.outcomes.append(transport)
        return transport

    def fail(self, error: BaseException | None = None) -> None:
        self.outcomes.append(error or ConnectionRefusedError("connection refused"))

    @property
    def calls(self) -> int:
        return len(self.urls)

    async def __call__(self, url: str) -> FakeTransport:
        self.urls.append(url)
        outcome = self.outcomes.popleft() if self.outcomes else ConnectionRefusedError("connection refused")
        if isinstance(outcome, BaseException):
            raise outcome
        self.transports.append(outcome)
        return outcome


@pytest.fixture
def connector():
    return FakeConnector()


async def settle(rounds: int = 20) -> None:
    """Let pending tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def run_pending():
    return settle


# =============================================================================
# Audio fakes
# =============================================================================


class RecordingToner:
    def __init__(self):
        self.played = []
        self.closed = False

    def play(self, tone) -> None:
        self.played.append(tone)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def toner():
    return RecordingToner()

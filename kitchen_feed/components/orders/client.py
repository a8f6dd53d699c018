"""
Order API client.

Fetches the initial snapshot of a restaurant's kitchen orders from the REST
backend. The backend answers either with a bare JSON list or with the
``{"status", "data", "error"}`` envelope; both are accepted.
"""

from __future__ import annotations

import asyncio
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from shared.config.logging import get_logger
from shared.config.settings import settings
from shared.utils.exceptions import OrderApiError
from kitchen_feed.components.orders.models import Order

logger = get_logger(__name__)

KITCHEN_ORDERS_PATH = "/kitchen/orders"


class OrderApiClient:
    """
    Async client for the order-listing service.

    The underlying ``httpx.AsyncClient`` is created lazily on first use and
    shared by every request; call ``close()`` on shutdown.
    """

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        token: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = (base_url or settings.api_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.http_timeout
        self._token = token if token is not None else (settings.api_token or None)
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create the shared HTTP client."""
        if self._client is not None and not self._client.is_closed:
            return self._client

        async with self._client_lock:
            if self._client is None or self._client.is_closed:
                headers = {"Accept": "application/json"}
                if self._token:
                    headers["Authorization"] = f"Bearer {self._token}"
                self._client = httpx.AsyncClient(
                    base_url=self.base_url,
                    timeout=self.timeout,
                    headers=headers,
                    transport=self._transport,
                )
        return self._client

    async def close(self) -> None:
        """Close the HTTP client. Should be called on shutdown."""
        if self._client is not None and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def list_orders(self, restaurant_id: str) -> list[Order]:
        """
        Fetch the current orders for a restaurant.

        Returns every order the backend sends; filtering to the active ones is
        the queue's job.

        Raises:
            OrderApiError: On transport failure, error status, or unusable body.
        """
        client = await self._get_client()
        try:
            response = await client.get(
                KITCHEN_ORDERS_PATH,
                params={"restaurantId": restaurant_id},
            )
        except httpx.HTTPError as e:
            raise OrderApiError(
                "NETWORK_ERROR",
                f"Failed to reach order service: {e}",
                restaurant_id=restaurant_id,
            ) from e

        payload = self._decode(response, restaurant_id)

        orders: list[Order] = []
        for raw in payload:
            try:
                orders.append(Order.model_validate(raw))
            except ValidationError as e:
                # One bad row must not hide the rest of the queue
                logger.warning(
                    "Skipping invalid order in snapshot",
                    restaurant_id=restaurant_id,
                    order_id=raw.get("id") if isinstance(raw, dict) else None,
                    errors=e.error_count(),
                )

        logger.info(
            "Fetched kitchen orders",
            restaurant_id=restaurant_id,
            count=len(orders),
        )
        return orders

    def _decode(self, response: httpx.Response, restaurant_id: str) -> list[Any]:
        """Unwrap the response body into a list of raw orders."""
        try:
            body = response.json()
        except ValueError as e:
            raise OrderApiError(
                "INVALID_RESPONSE",
                "Order service returned a non-JSON body",
                status_code=response.status_code,
                restaurant_id=restaurant_id,
            ) from e

        if isinstance(body, dict):
            if response.is_error or body.get("status") == "error":
                error = body.get("error") or {}
                if not isinstance(error, dict):
                    error = {"message": str(error)}
                raise OrderApiError(
                    error.get("code", "UNKNOWN_ERROR"),
                    error.get("message", "An error occurred"),
                    status_code=response.status_code,
                    restaurant_id=restaurant_id,
                )
            body = body.get("data")
        elif response.is_error:
            raise OrderApiError(
                f"HTTP_{response.status_code}",
                "Order service returned an error status",
                status_code=response.status_code,
                restaurant_id=restaurant_id,
            )

        if not isinstance(body, list):
            raise OrderApiError(
                "INVALID_RESPONSE",
                "Order service response does not contain an order list",
                status_code=response.status_code,
                restaurant_id=restaurant_id,
            )
        return body

"""
Remote Order Service Client

Thin async wrapper over the two order endpoints the board needs:

    GET /orders/today    conditional on If-None-Match, answers 304 or the full list + ETag
    PUT /orders/{id}     partial update of status / driverName / paymentType

Every call carries the bearer credential and is bounded by a client-side
timeout. A timeout raises RequestTimeoutError, never RemoteServiceError.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Union

import httpx

from orderboard.config import BoardConfig
from orderboard.exceptions import (
    AuthorizationFailedError,
    RemoteConnectionError,
    RemoteServiceError,
    RequestTimeoutError,
)
from orderboard.logging_config import logger


UPDATABLE_FIELDS = frozenset({"status", "driverName", "paymentType"})

# Repeated auth failures inside this window only notify once
AUTH_NOTIFY_WINDOW = 2.0


@dataclass
class TodayOrdersResponse:
    """Result of GET /orders/today"""
    status_code: int
    orders: Optional[List[Dict[str, Any]]] = None
    etag: Optional[str] = None

    @property
    def not_modified(self) -> bool:
        return self.status_code == 304

    @property
    def has_data(self) -> bool:
        return bool(self.orders)


class OrderServiceClient:
    """
    Async client for the remote order service.

    Usage:
        async with OrderServiceClient(config) as client:
            response = await client.get_today_orders(etag)
    """

    def __init__(
        self,
        config: BoardConfig,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        on_session_invalidated: Optional[Callable[[int, str], None]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.base_url = config.api_base_url.rstrip('/')
        self.timeout = config.request_timeout
        self._token_provider = token_provider or (lambda: self.config.auth_token)
        self._on_session_invalidated = on_session_invalidated
        self._last_auth_notice = float("-inf")
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=httpx.Timeout(self.timeout),
            transport=transport,
        )

    async def __aenter__(self) -> "OrderServiceClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    def _get_headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        token = self._token_provider()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        if extra:
            headers.update(extra)
        return headers

    def _notify_auth_failure(self, status_code: int, endpoint: str) -> None:
        """Hand a 401/403 to the session collaborator, at most once per window"""
        logger.warning(f"Unauthorized ({status_code}) response from {endpoint}. Token may be invalid or expired.")
        now = time.monotonic()
        if now - self._last_auth_notice <= AUTH_NOTIFY_WINDOW:
            return
        self._last_auth_notice = now
        if self._on_session_invalidated:
            self._on_session_invalidated(status_code, endpoint)

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            body = response.text
        if isinstance(body, dict) and body.get("message"):
            return str(body["message"])
        if isinstance(body, str) and body.strip():
            return body.strip()
        return "API Request Failed"

    async def _request(
        self,
        method: str,
        endpoint: str,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        started = time.perf_counter()
        try:
            response = await self._client.request(
                method, endpoint, json=json, headers=self._get_headers(headers)
            )
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(self.timeout, endpoint) from e
        except httpx.TransportError as e:
            raise RemoteConnectionError(f"Cannot reach order service: {e}", endpoint) from e

        duration_ms = (time.perf_counter() - started) * 1000
        logger.log_request(method, endpoint, response.status_code, duration_ms)

        if response.status_code in (401, 403):
            self._notify_auth_failure(response.status_code, endpoint)
            raise AuthorizationFailedError(response.status_code, endpoint)

        if response.status_code >= 400:
            raise RemoteServiceError(response.status_code, self._error_message(response), endpoint)

        return response

    async def get_today_orders(self, etag: Optional[str] = None) -> TodayOrdersResponse:
        """Fetch today's orders, conditional on the validator token when one is held"""
        extra = {"If-None-Match": etag} if etag else None
        response = await self._request("GET", "/orders/today", headers=extra)

        new_etag = response.headers.get("ETag")
        if response.status_code == 304:
            return TodayOrdersResponse(status_code=304, etag=etag)
        if response.status_code == 204 or not response.content:
            return TodayOrdersResponse(status_code=response.status_code, etag=new_etag)

        try:
            data = response.json()
        except ValueError:
            logger.error("Failed to parse JSON response from /orders/today")
            data = None

        orders = data if isinstance(data, list) else None
        return TodayOrdersResponse(status_code=response.status_code, orders=orders, etag=new_etag)

    async def update_order(
        self,
        order_id: Union[str, int],
        fields: Dict[str, Any],
    ) -> Optional[Dict[str, Any]]:
        """PUT a partial update for one order"""
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields not updatable from the board: {sorted(unknown)}")
        if not fields:
            raise ValueError("Update must carry at least one field")

        response = await self._request("PUT", f"/orders/{order_id}", json=fields)
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return None

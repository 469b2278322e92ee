"""
Order Board - Test Configuration and Fixtures
"""
import asyncio
from collections import deque
from typing import Any, Dict, List, Optional, Tuple, Union

import pytest

from orderboard.api_client import TodayOrdersResponse
from orderboard.config import BoardConfig
from orderboard.controller import BoardController


def order_record(
    order_id: Union[int, str],
    status: str = "Created",
    customer: str = "Customer",
    **extra: Any,
) -> Dict[str, Any]:
    """Wire-shaped order record"""
    record = {
        "id": order_id,
        "customerName": customer,
        "status": status,
        "driverName": None,
        "paymentType": None,
        "items": [],
        "createdAt": "2024-05-01T08:00:00Z",
        "statusUpdatedAt": "2024-05-01T08:00:00Z",
    }
    record.update(extra)
    return record


def full_response(records: List[Dict[str, Any]], etag: Optional[str] = '"v1"') -> TodayOrdersResponse:
    return TodayOrdersResponse(status_code=200, orders=records, etag=etag)


class FakeOrderService:
    """
    Stand-in for OrderServiceClient.

    Queue responses (or exceptions) for GET /orders/today; set get_gate or
    put_gate to hold a request in flight until the test releases it.
    """

    def __init__(self):
        self.responses: deque = deque()
        self.get_calls: List[Optional[str]] = []
        self.put_calls: List[Tuple[str, Dict[str, Any]]] = []
        self.put_errors: deque = deque()
        self.get_gate: Optional[asyncio.Event] = None
        self.put_gate: Optional[asyncio.Event] = None
        self.get_started = asyncio.Event()
        self.closed = False

    def queue(self, response: Union[TodayOrdersResponse, Exception]) -> None:
        self.responses.append(response)

    async def get_today_orders(self, etag: Optional[str] = None) -> TodayOrdersResponse:
        self.get_calls.append(etag)
        self.get_started.set()
        if self.get_gate is not None:
            await self.get_gate.wait()
        response = self.responses.popleft() if self.responses else TodayOrdersResponse(304, etag=etag)
        if isinstance(response, Exception):
            raise response
        return response

    async def update_order(self, order_id: str, fields: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        self.put_calls.append((str(order_id), dict(fields)))
        if self.put_gate is not None:
            await self.put_gate.wait()
        if self.put_errors:
            raise self.put_errors.popleft()
        return None

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def config(tmp_path) -> BoardConfig:
    """Fast timings so debounce tests finish quickly"""
    return BoardConfig(
        api_base_url="http://orders.test/api",
        auth_token="test-token",
        poll_interval=3600.0,
        sync_debounce=0.01,
        config_dir=str(tmp_path / ".orderboard"),
    )


@pytest.fixture
def service() -> FakeOrderService:
    return FakeOrderService()


@pytest.fixture
def board(config: BoardConfig, service: FakeOrderService) -> BoardController:
    """Controller wired to the fake service, not started"""
    return BoardController(config, client=service)


@pytest.fixture
def seeded_records() -> List[Dict[str, Any]]:
    return [
        order_record(1, "Created", "Alpha Ice"),
        order_record(2, "Created", "Bravo Mart"),
        order_record(3, "Created", "Charlie Cafe"),
        order_record(4, "Out for Delivery", "Delta Diner", driverName="Somchai"),
        order_record(5, "Completed", "Echo Bar", paymentType="Cash"),
    ]

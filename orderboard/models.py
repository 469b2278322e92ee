"""
Order Board Data Model

Orders are mirrored from the remote order service. The wire shape is
camelCase JSON; in Python they are plain dataclasses that get replaced,
never edited in place, so a column entry and the flat-list entry for the
same id always point at the same object.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from orderboard.exceptions import InvalidOrderDataError
from orderboard.logging_config import logger


class OrderStatus(str, Enum):
    """Order status as spoken on the wire"""
    CREATED = "Created"
    OUT_FOR_DELIVERY = "Out for Delivery"
    COMPLETED = "Completed"


class Column(str, Enum):
    """Board columns, a partition key over OrderStatus"""
    CREATED = "created"
    DELIVERING = "delivering"
    COMPLETED = "completed"

    @property
    def status(self) -> OrderStatus:
        return COLUMN_STATUSES[self]

    @classmethod
    def for_status(cls, status: OrderStatus) -> "Column":
        return STATUS_COLUMNS[status]

    @classmethod
    def parse(cls, value: Any) -> Optional["Column"]:
        """Column for a drop-target id, None if it names no column"""
        if isinstance(value, Column):
            return value
        try:
            return cls(str(value))
        except ValueError:
            return None


class PaymentType(str, Enum):
    """Payment methods an order can be marked with"""
    CASH = "Cash"
    DEBIT = "Debit"
    CREDIT = "Credit"


STATUS_COLUMNS: Dict[OrderStatus, Column] = {
    OrderStatus.CREATED: Column.CREATED,
    OrderStatus.OUT_FOR_DELIVERY: Column.DELIVERING,
    OrderStatus.COMPLETED: Column.COMPLETED,
}

COLUMN_STATUSES: Dict[Column, OrderStatus] = {column: status for status, column in STATUS_COLUMNS.items()}

COLUMNS: Tuple[Column, ...] = (Column.CREATED, Column.DELIVERING, Column.COMPLETED)


def coerce_status(value: Any) -> Tuple[OrderStatus, bool]:
    """
    Map a raw status value onto OrderStatus.

    Returns:
        (status, coerced) - coerced is True when the value was not one of
        the three known statuses and CREATED was substituted.
    """
    if isinstance(value, OrderStatus):
        return value, False
    try:
        return OrderStatus(value), False
    except ValueError:
        return OrderStatus.CREATED, True


def parse_payment_type(value: Any) -> Optional[PaymentType]:
    if value is None or value == "":
        return None
    if isinstance(value, PaymentType):
        return value
    try:
        return PaymentType(value)
    except ValueError:
        logger.warning(f"Unknown payment type {value!r}, treating as unset")
        return None


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp, tolerating a trailing Z"""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    try:
        text = str(value)
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
    except ValueError:
        logger.warning(f"Invalid timestamp received: {value!r}")
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def to_decimal(value: Any) -> Decimal:
    """Numeric value of an amount field, 0 when it is not a number"""
    if value is None or isinstance(value, bool):
        return Decimal("0")
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")
    return result if result.is_finite() else Decimal("0")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class OrderItem:
    """One line of an order"""
    product_type: Optional[str]
    quantity: Any = 0
    price_per_unit: Any = 0
    total_amount: Any = 0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OrderItem":
        return cls(
            product_type=data.get("productType"),
            quantity=data.get("quantity", 0),
            price_per_unit=data.get("pricePerUnit", 0),
            total_amount=data.get("totalAmount", 0),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "productType": self.product_type,
            "quantity": self.quantity,
            "pricePerUnit": self.price_per_unit,
            "totalAmount": self.total_amount,
        }


_ORDER_WIRE_KEYS = {
    "id", "customerName", "status", "driverName", "paymentType",
    "items", "createdAt", "statusUpdatedAt",
}


@dataclass(frozen=True)
class Order:
    """Local mirror of one remote order"""
    id: str
    customer_name: Optional[str] = None
    status: OrderStatus = OrderStatus.CREATED
    driver_name: Optional[str] = None
    payment_type: Optional[PaymentType] = None
    items: Tuple[OrderItem, ...] = ()
    created_at: Optional[datetime] = None
    status_updated_at: Optional[datetime] = None

    # Wire status when it had to be coerced, and fields this engine does not interpret
    raw_status: Optional[str] = field(default=None, compare=False)
    extra: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)

    @property
    def status_coerced(self) -> bool:
        return self.raw_status is not None

    @property
    def column(self) -> Column:
        return Column.for_status(self.status)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Order":
        if not isinstance(data, dict):
            raise InvalidOrderDataError(f"Order record must be an object, got {type(data).__name__}")
        raw_id = data.get("id")
        if raw_id is None or str(raw_id) == "":
            raise InvalidOrderDataError("Order record has no id")

        status, coerced = coerce_status(data.get("status"))
        items = data.get("items") or []

        return cls(
            id=str(raw_id),
            customer_name=data.get("customerName"),
            status=status,
            driver_name=data.get("driverName"),
            payment_type=parse_payment_type(data.get("paymentType")),
            items=tuple(OrderItem.from_dict(item) for item in items if isinstance(item, dict)),
            created_at=parse_timestamp(data.get("createdAt")),
            status_updated_at=parse_timestamp(data.get("statusUpdatedAt")),
            raw_status=str(data.get("status")) if coerced else None,
            extra={k: v for k, v in data.items() if k not in _ORDER_WIRE_KEYS},
        )

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.extra)
        data.update({
            "id": self.id,
            "customerName": self.customer_name,
            "status": self.status.value,
            "driverName": self.driver_name,
            "paymentType": self.payment_type.value if self.payment_type else None,
            "items": [item.to_dict() for item in self.items],
            "createdAt": format_timestamp(self.created_at),
            "statusUpdatedAt": format_timestamp(self.status_updated_at),
        })
        return data

    def with_status(self, status: OrderStatus, at: Optional[datetime] = None) -> "Order":
        return replace(self, status=status, status_updated_at=at or utcnow(), raw_status=None)


class _Unset:
    """Marker for a patch field that was not supplied"""

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()


@dataclass(frozen=True)
class OrderPatch:
    """
    Partial update to the non-status fields of an order.

    UNSET leaves a field alone; None clears it.
    """
    driver_name: Any = UNSET
    payment_type: Any = UNSET

    def __post_init__(self):
        if self.payment_type is not UNSET and self.payment_type is not None:
            object.__setattr__(self, "payment_type", PaymentType(self.payment_type))

    @property
    def is_empty(self) -> bool:
        return self.driver_name is UNSET and self.payment_type is UNSET

    def apply(self, order: Order) -> Order:
        changes: Dict[str, Any] = {}
        if self.driver_name is not UNSET:
            changes["driver_name"] = self.driver_name
        if self.payment_type is not UNSET:
            changes["payment_type"] = self.payment_type
        return replace(order, **changes) if changes else order

    def to_wire(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {}
        if self.driver_name is not UNSET:
            body["driverName"] = self.driver_name
        if self.payment_type is not UNSET:
            body["paymentType"] = self.payment_type.value if self.payment_type else None
        return body


@dataclass(frozen=True)
class PendingUpdate:
    """A status change waiting to be written upstream"""
    order_id: str
    target_status: OrderStatus

    def to_wire(self) -> Dict[str, Any]:
        return {"status": self.target_status.value}

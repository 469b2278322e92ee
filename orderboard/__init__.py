"""
Order Board sync engine

Keeps a three-column operations board (created, out for delivery,
completed) consistent with a polled, ETag-cached order service while the
operator drags cards and edits fields.
"""

from orderboard.config import BoardConfig
from orderboard.controller import BoardController
from orderboard.drag import DropTarget
from orderboard.models import Column, Order, OrderPatch, OrderStatus, PaymentType

__version__ = "1.0.0"

__all__ = [
    "BoardConfig",
    "BoardController",
    "DropTarget",
    "Column",
    "Order",
    "OrderPatch",
    "OrderStatus",
    "PaymentType",
]

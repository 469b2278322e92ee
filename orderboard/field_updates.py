"""
Field Update Channel - immediate, non-drag edits (driver, payment type)

The edit lands on the board before the request goes out and stays there
if the request fails; the next committed poll is what overwrites it.
"""

from typing import Callable, Optional, Union

from orderboard.api_client import OrderServiceClient
from orderboard.diagnostics import BoardDiagnostics
from orderboard.exceptions import OrderBoardError
from orderboard.logging_config import logger
from orderboard.models import Order, OrderPatch, PaymentType
from orderboard.store import BoardStore


def next_payment_type(
    current: Optional[PaymentType],
    clicked: Union[PaymentType, str],
) -> Optional[PaymentType]:
    """Clicking the active payment type deselects it; any other replaces it"""
    clicked = PaymentType(clicked)
    return None if current == clicked else clicked


class FieldUpdateChannel:
    """Optimistic patch + immediate PUT, no debounce"""

    def __init__(
        self,
        store: BoardStore,
        client: OrderServiceClient,
        invalidate: Callable[[str], None],
        diagnostics: Optional[BoardDiagnostics] = None,
    ):
        self.store = store
        self.client = client
        self._invalidate = invalidate
        self.diagnostics = diagnostics or store.diagnostics

    async def update_field(self, order_id: str, patch: OrderPatch) -> Optional[Order]:
        """
        Apply patch locally, then write it upstream.

        Returns:
            The patched order, or None if the id is not on the board

        Raises:
            OrderBoardError: the write failed; the local value is kept
        """
        if patch.is_empty:
            raise ValueError("Patch must set driver_name or payment_type")

        order_id = str(order_id)
        updated = self.store.apply_patch(order_id, patch)
        if updated is None:
            logger.log_unexpected_state(f"field update for order {order_id} not on the board", order_id=order_id)

        body = patch.to_wire()
        self._invalidate("field update")
        self.diagnostics.record("field_updates_sent")
        try:
            await self.client.update_order(order_id, body)
        except OrderBoardError as e:
            self.diagnostics.record("field_update_failures")
            logger.log_write_back(order_id, body, success=False, reason=e.message, error_code=e.code)
            raise
        logger.log_write_back(order_id, body, success=True)
        return updated

    async def set_driver(self, order_id: str, driver_name: Optional[str]) -> Optional[Order]:
        """Assign a driver. Whitespace is trimmed; an unchanged name sends nothing."""
        trimmed = (driver_name or "").strip()
        current = self.store.get(order_id)
        if current is not None and trimmed == (current.driver_name or ""):
            return current
        return await self.update_field(order_id, OrderPatch(driver_name=trimmed))

    async def toggle_payment_type(self, order_id: str, clicked: Union[PaymentType, str]) -> Optional[Order]:
        """Select or deselect a payment type for an order"""
        current = self.store.get(order_id)
        value = next_payment_type(current.payment_type if current else None, clicked)
        return await self.update_field(order_id, OrderPatch(payment_type=value))

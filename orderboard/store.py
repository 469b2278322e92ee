"""
Board Store - the in-memory projection of today's orders

Three ordered columns plus a flat list. Every order id lives in exactly
one column and exactly once in the flat list, and both places hold the
same Order object. Orders are immutable, so every mutation swaps the
object in both places at once.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

from orderboard.diagnostics import BoardDiagnostics
from orderboard.exceptions import BoardInvariantError
from orderboard.logging_config import logger
from orderboard.models import (
    COLUMNS,
    Column,
    Order,
    OrderPatch,
    OrderStatus,
    to_decimal,
    utcnow,
)


class Urgency(str, Enum):
    NORMAL = "normal"
    WARNING = "warning"
    DANGER = "danger"


# Minutes in status before an order is flagged (warning, danger)
STATUS_AGE_THRESHOLDS: Dict[OrderStatus, Tuple[int, int]] = {
    OrderStatus.CREATED: (30, 120),
    OrderStatus.OUT_FOR_DELIVERY: (60, 180),
}


@dataclass(frozen=True)
class StatusAge:
    minutes: int
    urgency: Urgency


def order_total(order: Order) -> Decimal:
    """Sum of item totals; non-numeric amounts count as zero"""
    return sum((to_decimal(item.total_amount) for item in order.items), Decimal("0"))


def status_age(order: Order, now: Optional[datetime] = None) -> Optional[StatusAge]:
    """How long the order has sat in its current status, and whether that is too long"""
    if order.status == OrderStatus.CREATED or order.status_updated_at is None:
        since = order.created_at
    else:
        since = order.status_updated_at
    if since is None:
        return None

    now = now or utcnow()
    minutes = max(0, int((now - since).total_seconds() // 60))

    thresholds = STATUS_AGE_THRESHOLDS.get(order.status)
    if thresholds is None:
        return StatusAge(minutes, Urgency.NORMAL)
    warning, danger = thresholds
    if minutes >= danger:
        return StatusAge(minutes, Urgency.DANGER)
    if minutes >= warning:
        return StatusAge(minutes, Urgency.WARNING)
    return StatusAge(minutes, Urgency.NORMAL)


def matches_search(order: Order, term: str, case_sensitive: bool = False) -> bool:
    """Substring match on customer name or order id; a blank term matches all"""
    term = term.strip()
    if not term:
        return True
    name = order.customer_name or ""
    order_id = order.id
    if not case_sensitive:
        term, name, order_id = term.lower(), name.lower(), order_id.lower()
    return term in name or term in order_id


class BoardStore:
    """Single owner of the last reconciled board state"""

    def __init__(self, diagnostics: Optional[BoardDiagnostics] = None, case_sensitive_search: bool = False):
        self.diagnostics = diagnostics or BoardDiagnostics()
        self.case_sensitive_search = case_sensitive_search
        self._columns: Dict[Column, List[Order]] = {column: [] for column in COLUMNS}
        self._orders: List[Order] = []
        self._search_terms: Dict[Column, str] = {column: "" for column in COLUMNS}

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def orders(self) -> List[Order]:
        return list(self._orders)

    def column(self, column: Column) -> List[Order]:
        return list(self._columns[column])

    def columns(self) -> Dict[Column, List[Order]]:
        return {column: list(items) for column, items in self._columns.items()}

    def column_ids(self, column: Column) -> List[str]:
        return [order.id for order in self._columns[column]]

    def locate(self, order_id: str) -> Optional[Column]:
        order_id = str(order_id)
        for column in COLUMNS:
            if any(order.id == order_id for order in self._columns[column]):
                return column
        return None

    def get(self, order_id: str) -> Optional[Order]:
        order_id = str(order_id)
        return next((order for order in self._orders if order.id == order_id), None)

    def counts(self) -> Dict[Column, int]:
        return {column: len(items) for column, items in self._columns.items()}

    def __len__(self) -> int:
        return len(self._orders)

    def __contains__(self, order_id: object) -> bool:
        return self.get(str(order_id)) is not None

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def set_search_term(self, column: Column, term: str) -> None:
        self._search_terms[column] = term or ""

    def search_term(self, column: Column) -> str:
        return self._search_terms[column]

    def search(self, column: Column, term: str) -> List[Order]:
        return [
            order for order in self._columns[column]
            if matches_search(order, term, self.case_sensitive_search)
        ]

    def visible_orders(self, column: Column) -> List[Order]:
        """Column contents filtered by that column's search term"""
        return self.search(column, self._search_terms[column])

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def partition(self, orders: Iterable[Order]) -> Dict[Column, List[Order]]:
        """Split orders into columns by status, preserving order"""
        partitioned: Dict[Column, List[Order]] = {column: [] for column in COLUMNS}
        for order in orders:
            if order.status_coerced:
                self.diagnostics.record("unknown_statuses")
                logger.warning(
                    f"Order {order.id} status {order.raw_status!r} is not a known status. Defaulting to 'created'.",
                    extra={"order_id": order.id, "raw_status": order.raw_status}
                )
            partitioned[order.column].append(order)
        return partitioned

    def replace_all(self, orders: Iterable[Order]) -> None:
        """Overwrite the board with a fresh server snapshot"""
        unique: List[Order] = []
        seen = set()
        for order in orders:
            if order.id in seen:
                logger.log_unexpected_state(f"order {order.id} listed twice by server, keeping first",
                                            order_id=order.id)
                continue
            seen.add(order.id)
            unique.append(order)

        self._columns = self.partition(unique)
        self._orders = unique

    def clear(self) -> None:
        self._columns = {column: [] for column in COLUMNS}
        self._orders = []

    def _swap(self, updated: Order) -> None:
        """Replace the flat-list entry that shares updated.id"""
        self._orders = [updated if order.id == updated.id else order for order in self._orders]

    def reorder_within(self, column: Column, active_id: str, over_id: str) -> bool:
        """Move active_id to over_id's position inside one column. Visual only."""
        items = self._columns[column]
        active_id, over_id = str(active_id), str(over_id)
        active_index = next((i for i, o in enumerate(items) if o.id == active_id), -1)
        over_index = next((i for i, o in enumerate(items) if o.id == over_id), -1)
        if active_index == -1 or over_index == -1 or active_index == over_index:
            return False
        reordered = list(items)
        reordered.insert(over_index, reordered.pop(active_index))
        self._columns[column] = reordered
        return True

    def restore_column_order(self, column: Column, order_ids: List[str]) -> None:
        """Put a column back into a captured id order; ids not captured keep their tail position"""
        rank = {order_id: i for i, order_id in enumerate(order_ids)}
        items = self._columns[column]
        known = sorted((o for o in items if o.id in rank), key=lambda o: rank[o.id])
        self._columns[column] = known + [o for o in items if o.id not in rank]

    def move(
        self,
        order_id: str,
        source: Optional[Column],
        target: Column,
        at: Optional[datetime] = None,
    ) -> Optional[Order]:
        """
        Move an order to another column and set the matching status.

        When the order is not in the expected source column every column is
        searched before giving up.

        Returns:
            The moved order, or None if the id is nowhere on the board
        """
        order_id = str(order_id)
        found_in = source if source is not None and any(o.id == order_id for o in self._columns[source]) else None

        if found_in is None:
            self.diagnostics.record("missing_item_recoveries")
            logger.log_unexpected_state(
                f"order {order_id} not found in source column {source.value if source else None}",
                order_id=order_id,
            )
            found_in = self.locate(order_id)
            if found_in is None:
                self.diagnostics.record("abandoned_moves")
                logger.error(f"Order {order_id} not found in any column, move to {target.value} abandoned")
                return None
            logger.warning(f"Order {order_id} found in unexpected column {found_in.value}, adjusting source")

        if found_in == target:
            return None

        source_items = list(self._columns[found_in])
        index = next(i for i, o in enumerate(source_items) if o.id == order_id)
        moved = source_items.pop(index).with_status(target.status, at)

        self._columns[found_in] = source_items
        self._columns[target] = self._columns[target] + [moved]
        self._swap(moved)
        return moved

    def apply_patch(self, order_id: str, patch: OrderPatch) -> Optional[Order]:
        """Apply a field patch to the order wherever it sits"""
        order_id = str(order_id)
        column = self.locate(order_id)
        if column is None:
            return None
        updated: Optional[Order] = None
        items = []
        for order in self._columns[column]:
            if order.id == order_id:
                updated = patch.apply(order)
                items.append(updated)
            else:
                items.append(order)
        self._columns[column] = items
        self._swap(updated)
        return updated

    def insert(self, order: Order) -> bool:
        """Add a newly created order at the top of its column. False if the id is already present."""
        if order.id in self:
            return False
        if order.status_coerced:
            self.diagnostics.record("unknown_statuses")
            logger.warning(f"Order {order.id} status {order.raw_status!r} is not a known status. Defaulting to 'created'.")
        self._columns[order.column] = [order] + self._columns[order.column]
        self._orders = [order] + self._orders
        return True

    def check_invariants(self) -> None:
        """Raise BoardInvariantError if the columns and flat list disagree"""
        seen: Dict[str, Column] = {}
        for column in COLUMNS:
            for order in self._columns[column]:
                if order.id in seen:
                    raise BoardInvariantError(
                        f"Order {order.id} appears in {seen[order.id].value} and {column.value}", order.id
                    )
                if order.column != column:
                    raise BoardInvariantError(
                        f"Order {order.id} with status {order.status.value} filed under {column.value}", order.id
                    )
                seen[order.id] = column

        flat_ids = [order.id for order in self._orders]
        if len(flat_ids) != len(set(flat_ids)):
            raise BoardInvariantError("Flat order list contains a duplicate id")
        if set(flat_ids) != set(seen):
            raise BoardInvariantError("Flat order list and columns hold different ids")

        by_id = {order.id: order for order in self._orders}
        for column in COLUMNS:
            for order in self._columns[column]:
                if by_id[order.id] != order:
                    raise BoardInvariantError(f"Order {order.id} differs between column and flat list", order.id)

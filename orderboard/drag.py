"""
Drag Session - one operator-initiated move of an order card

    IDLE ──start──► ACTIVE ──end/cancel──► IDLE
                     │  ▲
                     └──┘ over (same-column reorder preview)

The session only decides what a gesture means. It never touches the
board; the controller applies what start/over/end/cancel hand back.
While the session is ACTIVE the poll result guard stays closed.
"""

from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Set

from orderboard.exceptions import InvalidTransitionError
from orderboard.logging_config import logger
from orderboard.models import Column, utcnow


class DragState(str, Enum):
    IDLE = "idle"
    ACTIVE = "active"


DRAG_TRANSITIONS: Dict[DragState, Set[DragState]] = {
    DragState.IDLE: {DragState.ACTIVE},
    DragState.ACTIVE: {DragState.IDLE},
}


class TargetKind(str, Enum):
    COLUMN = "column"
    ORDER = "order"


@dataclass(frozen=True)
class DropTarget:
    """
    What the pointer is over: a column, or another order card inside a column.
    """
    kind: Optional[TargetKind]
    id: str
    parent_column: Optional[Column] = None

    @classmethod
    def column(cls, column: Column) -> "DropTarget":
        return cls(TargetKind.COLUMN, column.value)

    @classmethod
    def order(cls, order_id: str, parent_column: Column) -> "DropTarget":
        return cls(TargetKind.ORDER, str(order_id), parent_column)

    def resolve_column(self) -> Optional[Column]:
        """Column this target lies in, None if it is not on the board"""
        if self.kind == TargetKind.ORDER:
            return self.parent_column
        # Column targets, and bare ids that happen to name a column
        return Column.parse(self.id)


@dataclass
class DragTransition:
    """Record of a drag session transition"""
    from_state: DragState
    to_state: DragState
    order_id: Optional[str]
    reason: str
    timestamp: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_state.value,
            "to": self.to_state.value,
            "order_id": self.order_id,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class Reorder:
    """Same-column visual reorder: put active_id where over_id is"""
    column: Column
    active_id: str
    over_id: str


@dataclass(frozen=True)
class Move:
    """Committed cross-column move"""
    order_id: str
    source: Column
    target: Column


@dataclass(frozen=True)
class Cancelled:
    """Aborted gesture, with the source column order captured at start"""
    order_id: str
    source: Column
    source_order: List[str]


class DragSession:
    """State machine for a single drag gesture, reused across gestures"""

    def __init__(self, max_history: int = 50):
        self._state = DragState.IDLE
        self.order_id: Optional[str] = None
        self.source_column: Optional[Column] = None
        self._source_order: List[str] = []
        self._history: Deque[DragTransition] = deque(maxlen=max_history)

    @property
    def state(self) -> DragState:
        return self._state

    @property
    def is_active(self) -> bool:
        return self._state == DragState.ACTIVE

    @property
    def history(self) -> List[DragTransition]:
        return list(self._history)

    def _transition(self, to_state: DragState, reason: str, order_id: Optional[str]) -> None:
        if to_state not in DRAG_TRANSITIONS[self._state]:
            raise InvalidTransitionError(self._state.value, to_state.value)
        self._history.append(DragTransition(self._state, to_state, order_id, reason))
        logger.debug(f"[drag] {self._state.value} → {to_state.value} ({reason}) order={order_id}")
        self._state = to_state

    def _reset(self) -> None:
        self.order_id = None
        self.source_column = None
        self._source_order = []

    def start(self, order_id: str, source_column: Column, source_order: List[str]) -> None:
        """Begin dragging order_id out of source_column"""
        self._transition(DragState.ACTIVE, "start", str(order_id))
        self.order_id = str(order_id)
        self.source_column = source_column
        self._source_order = list(source_order)

    def over(self, target: Optional[DropTarget]) -> Optional[Reorder]:
        """
        Pointer moved over target.

        Returns a Reorder when hovering another card in the source column;
        cross-column hovering is only observed.
        """
        if not self.is_active or target is None:
            return None
        column = target.resolve_column()
        if column is None or column != self.source_column:
            return None
        if target.kind != TargetKind.ORDER or target.id == self.order_id:
            return None
        return Reorder(column, self.order_id, target.id)

    def end(self, target: Optional[DropTarget]) -> Optional[Move]:
        """
        Drop. Returns the Move to commit, or None when nothing changes status:
        no valid column under the pointer, or the order was dropped back
        into its own column.
        """
        if not self.is_active:
            logger.warning("Drag end received with no active drag, ignoring")
            return None

        order_id, source = self.order_id, self.source_column
        self._transition(DragState.IDLE, "end", order_id)
        self._reset()

        target_column = target.resolve_column() if target is not None else None
        if target_column is None or target_column == source:
            logger.debug(f"[drag] No column change for order {order_id}: {source} → {target_column}")
            return None
        return Move(order_id, source, target_column)

    def cancel(self) -> Optional[Cancelled]:
        """Abort the gesture. Returns what the controller needs to undo the preview."""
        if not self.is_active:
            logger.warning("Drag cancel received with no active drag, ignoring")
            return None

        cancelled = Cancelled(self.order_id, self.source_column, list(self._source_order))
        self._transition(DragState.IDLE, "cancel", self.order_id)
        self._reset()
        return cancelled

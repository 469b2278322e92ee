"""
Board Controller - orchestrates the order board sync engine

Three timelines share one event loop:
1. The fixed-interval poll (ConditionalFetchCache)
2. The write-back debounce timer (WriteBackQueue)
3. Operator gestures (DragSession, FieldUpdateChannel, creation notices)

The controller owns the guard predicate - drag active OR write-back
pending - and the guard is evaluated twice for every poll: when the
request is dispatched, and again when its result comes back. A poll is
also stale when any local mutation happened after it was sent, or when a
refresh sent after it has already landed. Gesture handlers are
synchronous, so the board is already mutated by the time any network
write for that gesture is awaited.

Usage:
    async with BoardController(config) as board:
        board.drag_start("42")
        board.drag_end(DropTarget.column(Column.DELIVERING))
"""

import asyncio
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Set, Union

from orderboard.api_client import OrderServiceClient
from orderboard.config import BoardConfig
from orderboard.diagnostics import BoardDiagnostics
from orderboard.drag import DragSession, DropTarget
from orderboard.exceptions import InvalidOrderDataError
from orderboard.fetch_cache import ConditionalFetchCache, FetchOutcome, OutcomeKind
from orderboard.field_updates import FieldUpdateChannel
from orderboard.logging_config import generate_session_id, logger, set_board_session
from orderboard.models import COLUMNS, Order, OrderPatch, PaymentType, PendingUpdate, utcnow
from orderboard.store import BoardStore
from orderboard.writeback import WriteBackQueue


class BoardController:
    """One live operations board session"""

    def __init__(
        self,
        config: BoardConfig,
        client: Optional[OrderServiceClient] = None,
        on_change: Optional[Callable[["BoardController"], None]] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.config = config
        self.session_id = generate_session_id()
        set_board_session(self.session_id)

        self.diagnostics = BoardDiagnostics()
        self._owns_client = client is None
        self.client = client or OrderServiceClient(config)
        self.store = BoardStore(self.diagnostics, config.search_case_sensitive)
        self.fetch_cache = ConditionalFetchCache(self.client, guard=self.is_sync_blocked,
                                                 diagnostics=self.diagnostics)
        self.write_back = WriteBackQueue(
            self._write_status,
            quiet_period=config.sync_debounce,
            diagnostics=self.diagnostics,
            on_written=self._on_status_written,
        )
        self.drag = DragSession()
        self.fields = FieldUpdateChannel(self.store, self.client, self.invalidate_validator, self.diagnostics)

        self._on_change = on_change
        self._clock = clock
        self._poll_task: Optional[asyncio.Task] = None
        self._refresh_tasks: Set[asyncio.Task] = set()
        # Bumped on every local mutation; a poll sent under an older generation is stale
        self._generation = 0
        # Dispatch sequence of refreshes, and the newest one whose answer has landed
        self._dispatched = 0
        self._settled = 0
        self._closed = False

    async def __aenter__(self) -> "BoardController":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Guard and validator
    # ------------------------------------------------------------------

    def is_sync_blocked(self) -> bool:
        """True while a poll result must not land on the board"""
        return self.drag.is_active or not self.write_back.is_empty

    def invalidate_validator(self, reason: str) -> None:
        """Local truth now leads the server; the next poll must be a full fetch"""
        self._bump_generation()
        self.fetch_cache.clear_validator(reason)

    def _bump_generation(self) -> None:
        self._generation += 1

    def _is_stale(self, generation: int, sequence: int) -> bool:
        """Commit-time check for one dispatched poll"""
        return (
            self.is_sync_blocked()
            or generation != self._generation
            or sequence < self._settled
        )

    def _notify(self) -> None:
        if self._on_change:
            self._on_change(self)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def refresh(self, force: bool = False) -> FetchOutcome:
        """
        Run one conditional fetch and commit the result if the guard allows.

        Args:
            force: Unconditional - dispatch even while blocked and skip If-None-Match.
                   The commit-time guard still applies.
        """
        if not force and self.is_sync_blocked():
            logger.debug(
                f"Skipping fetch: drag active={self.drag.is_active}, pending updates={len(self.write_back)}"
            )
            return FetchOutcome(OutcomeKind.SKIPPED)

        self.diagnostics.record("polls_started")
        self._dispatched += 1
        sequence, generation = self._dispatched, self._generation
        outcome = await self.fetch_cache.refresh(
            force=force, guard=lambda: self._is_stale(generation, sequence)
        )
        self._commit(outcome, sequence)
        return outcome

    def _commit(self, outcome: FetchOutcome, sequence: int) -> None:
        # Runs in the same step as the cache's commit-time guard check
        if outcome.kind in (OutcomeKind.UPDATED, OutcomeKind.EMPTY, OutcomeKind.NOT_MODIFIED):
            self._settled = max(self._settled, sequence)
        if outcome.kind == OutcomeKind.UPDATED:
            self.store.replace_all(outcome.orders)
            self.diagnostics.record("polls_committed")
            logger.log_poll_outcome("updated", len(outcome.orders), outcome.validator)
            self._notify()
        elif outcome.kind == OutcomeKind.EMPTY:
            self.store.clear()
            self.diagnostics.record("polls_committed")
            logger.log_poll_outcome("empty", validator=outcome.validator)
            self._notify()
        elif outcome.kind == OutcomeKind.NOT_MODIFIED:
            self.diagnostics.record("not_modified")
            logger.debug(f"Data not modified (304). ETag: {outcome.validator}")
        elif outcome.kind == OutcomeKind.FAILED:
            self.diagnostics.record("polls_failed")
            logger.log_poll_outcome("failed", error_code=outcome.error.code if outcome.error else None)

    async def _poll_loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self.config.poll_interval)
                await self.refresh()
            except asyncio.CancelledError:
                break
            except Exception as e:
                # Next tick is the retry
                logger.log_error_with_context(e, context="poll loop")

    async def start(self) -> None:
        """Initial fetch, then poll every config.poll_interval seconds"""
        if self._poll_task is not None:
            return
        logger.info(f"Board session started, polling every {self.config.poll_interval:g}s")
        await self.refresh()
        self._poll_task = asyncio.create_task(self._poll_loop())

    async def close(self) -> None:
        """Stop polling, settle the write-back queue, release the HTTP client"""
        if self._closed:
            return
        self._closed = True

        if self._poll_task:
            self._poll_task.cancel()
            try:
                await self._poll_task
            except asyncio.CancelledError:
                pass
            self._poll_task = None

        if self._refresh_tasks:
            await asyncio.gather(*self._refresh_tasks, return_exceptions=True)

        await self.write_back.close(flush=self.config.flush_on_close)

        if self._owns_client:
            await self.client.aclose()
        logger.info("Board session closed", extra={"diagnostics": self.diagnostics.to_dict()})

    # ------------------------------------------------------------------
    # Write-back
    # ------------------------------------------------------------------

    async def _write_status(self, update: PendingUpdate) -> None:
        await self.client.update_order(update.order_id, update.to_wire())

    def _on_status_written(self, update: PendingUpdate) -> None:
        self.invalidate_validator(f"status of order {update.order_id} written")

    # ------------------------------------------------------------------
    # Drag gestures (synchronous)
    # ------------------------------------------------------------------

    def drag_start(self, order_id: str) -> bool:
        """Begin a drag, replacing any drag whose end never arrived. False if the order is not on the board."""
        order_id = str(order_id)
        column = self.store.locate(order_id)
        if column is None:
            logger.log_unexpected_state(f"drag started on order {order_id} not on the board", order_id=order_id)
            return False
        if self.drag.is_active:
            # End event lost; the new gesture replaces the old one
            logger.log_unexpected_state(
                f"drag of order {order_id} started while order {self.drag.order_id} was still being dragged",
                order_id=order_id,
            )
            abandoned = self.drag.cancel()
            self.store.restore_column_order(abandoned.source, abandoned.source_order)
        self._bump_generation()
        self.drag.start(order_id, column, self.store.column_ids(column))
        return True

    def drag_over(self, target: Optional[DropTarget]) -> bool:
        """Hover feedback. True if the source column was visually reordered."""
        reorder = self.drag.over(target)
        if reorder is None:
            return False
        changed = self.store.reorder_within(reorder.column, reorder.active_id, reorder.over_id)
        if changed:
            self._notify()
        return changed

    def drag_end(self, target: Optional[DropTarget]) -> Optional[Order]:
        """
        Drop. A cross-column drop moves the order, stamps its status time,
        queues the status write and invalidates the validator.

        Returns:
            The moved order, or None when no status changed
        """
        move = self.drag.end(target)
        if move is None:
            return None

        moved = self.store.move(move.order_id, move.source, move.target, at=self._clock())
        if moved is None:
            return None

        logger.info(f"Order {moved.id} moved {move.source.value} → {move.target.value} ({moved.status.value})")
        self.write_back.enqueue(moved.id, moved.status)
        self.invalidate_validator("drag completed")
        self._notify()
        return moved

    def drag_cancel(self) -> asyncio.Task:
        """
        Abort the drag, undo any reorder preview and force a resync.

        Returns:
            The task running the unconditional refresh
        """
        cancelled = self.drag.cancel()
        self._bump_generation()
        if cancelled is not None:
            self.store.restore_column_order(cancelled.source, cancelled.source_order)
            self._notify()

        task = asyncio.create_task(self.refresh(force=True))
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)
        return task

    # ------------------------------------------------------------------
    # Field updates
    # ------------------------------------------------------------------

    async def update_field(self, order_id: str, patch: OrderPatch) -> Optional[Order]:
        try:
            return await self.fields.update_field(order_id, patch)
        finally:
            self._notify()

    async def update_driver(self, order_id: str, driver_name: Optional[str]) -> Optional[Order]:
        try:
            return await self.fields.set_driver(order_id, driver_name)
        finally:
            self._notify()

    async def toggle_payment_type(self, order_id: str, clicked: Union[PaymentType, str]) -> Optional[Order]:
        try:
            return await self.fields.toggle_payment_type(order_id, clicked)
        finally:
            self._notify()

    # ------------------------------------------------------------------
    # Creation notices
    # ------------------------------------------------------------------

    def order_created(self, record: Union[Order, Dict[str, Any]]) -> bool:
        """Merge an externally created order. False for invalid or duplicate records."""
        if isinstance(record, dict):
            if not record.get("status"):
                logger.error(f"Invalid new order data, no status: {record!r}")
                return False
            try:
                order = Order.from_dict(record)
            except InvalidOrderDataError as e:
                logger.error(f"Invalid new order data: {e.message}")
                return False
        else:
            order = record

        if not self.store.insert(order):
            self.diagnostics.record("duplicate_creations")
            logger.debug(f"Order {order.id} already on the board, creation notice ignored")
            return False

        logger.info(f"New order {order.id} added to {order.column.value}")
        self.invalidate_validator("order created")
        self._notify()
        return True

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def snapshot(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "columns": {column.value: self.store.column_ids(column) for column in COLUMNS},
            "pending_updates": [
                {"order_id": u.order_id, "status": u.target_status.value} for u in self.write_back.entries
            ],
            "validator": self.fetch_cache.validator,
            "drag": self.drag.state.value,
            "diagnostics": self.diagnostics.to_dict(),
        }

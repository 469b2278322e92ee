"""
Write-Back Queue - debounced upstream sync of status changes

FIFO by first enqueue, coalesced by order id. The head entry is written
after a quiet period; any change to the queue restarts that period, an
identical re-enqueue does not. One write is in flight at a time, and the
entry is dropped afterwards whether the write succeeded or not - the
board keeps showing what the operator asked for.
"""

import asyncio
from typing import Any, Awaitable, Callable, List, Optional

from orderboard.diagnostics import BoardDiagnostics
from orderboard.exceptions import OrderBoardError
from orderboard.logging_config import logger
from orderboard.models import OrderStatus, PendingUpdate


Writer = Callable[[PendingUpdate], Awaitable[Any]]


class WriteBackQueue:
    """
    Coalescing, debounced queue of PendingUpdates.

    Usage:
        queue = WriteBackQueue(writer, quiet_period=0.75)
        queue.enqueue("42", OrderStatus.OUT_FOR_DELIVERY)
        ...
        await queue.close()
    """

    def __init__(
        self,
        writer: Writer,
        quiet_period: float = 0.75,
        diagnostics: Optional[BoardDiagnostics] = None,
        on_written: Optional[Callable[[PendingUpdate], None]] = None,
    ):
        self._writer = writer
        self.quiet_period = quiet_period
        self.diagnostics = diagnostics or BoardDiagnostics()
        self._on_written = on_written
        self._entries: List[PendingUpdate] = []
        self._in_flight: Optional[PendingUpdate] = None
        self._timer: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._closed = False

    def __len__(self) -> int:
        return len(self._entries) + (1 if self._in_flight is not None else 0)

    @property
    def is_empty(self) -> bool:
        return len(self) == 0

    @property
    def entries(self) -> List[PendingUpdate]:
        """Queued entries, not counting the one being written"""
        return list(self._entries)

    @property
    def in_flight(self) -> Optional[PendingUpdate]:
        return self._in_flight

    def get(self, order_id: str) -> Optional[PendingUpdate]:
        order_id = str(order_id)
        return next((entry for entry in self._entries if entry.order_id == order_id), None)

    def enqueue(self, order_id: str, target_status: OrderStatus) -> bool:
        """
        Queue a status write for an order.

        Returns:
            True if the queue changed, False for a no-op
        """
        if self._closed:
            logger.warning(f"Write-back queue closed, dropping update {order_id} -> {target_status.value}")
            return False

        update = PendingUpdate(str(order_id), target_status)
        index = next((i for i, e in enumerate(self._entries) if e.order_id == update.order_id), -1)

        if index != -1:
            if self._entries[index].target_status == target_status:
                return False
            self._entries[index] = update
        elif self._in_flight == update:
            return False
        else:
            self._entries.append(update)

        self._idle.clear()
        self._restart_timer()
        return True

    def _restart_timer(self) -> None:
        # The in-flight flush reschedules itself when it finishes
        if self._in_flight is not None or self._closed:
            return
        if self._timer and not self._timer.done():
            self._timer.cancel()
        self._timer = asyncio.create_task(self._wait_and_flush())

    async def _wait_and_flush(self) -> None:
        await asyncio.sleep(self.quiet_period)
        await self._flush_head()

    async def _flush_head(self) -> None:
        if not self._entries:
            return
        head = self._entries.pop(0)
        self._in_flight = head
        fields = head.to_wire()
        try:
            await self._writer(head)
            self.diagnostics.record("write_backs_sent")
            logger.log_write_back(head.order_id, fields, success=True)
            if self._on_written:
                self._on_written(head)
        except OrderBoardError as e:
            self.diagnostics.record("write_back_failures")
            logger.log_write_back(head.order_id, fields, success=False, reason=e.message, error_code=e.code)
        except Exception as e:
            self.diagnostics.record("write_back_failures")
            logger.log_error_with_context(e, context=f"write-back of order {head.order_id}")
        finally:
            self._in_flight = None
            if not self._entries:
                self._idle.set()
            elif not self._closed:
                self._timer = asyncio.create_task(self._wait_and_flush())

    async def wait_until_empty(self) -> None:
        """Wait until every queued entry has been written (or has failed)"""
        await self._idle.wait()

    async def close(self, flush: bool = True) -> None:
        """Stop the timer; with flush, write out whatever is still queued right away"""
        self._closed = True
        timer = self._timer
        self._timer = None
        if timer and not timer.done():
            if self._in_flight is not None:
                # Let the running write finish
                await timer
            else:
                timer.cancel()
                try:
                    await timer
                except asyncio.CancelledError:
                    pass

        if flush:
            while self._entries:
                await self._flush_head()
        elif self._entries:
            logger.warning(f"Write-back queue closed with {len(self._entries)} unsent updates")
            self._entries.clear()
        self._idle.set()

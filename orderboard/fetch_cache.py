"""
Conditional Fetch Cache

Wraps GET /orders/today. Remembers the last validator token (ETag) and
sends it as If-None-Match, so an unchanged board costs a 304 and nothing
else.

The cache never writes into the board itself. refresh() hands back an
outcome; the guard predicate it was built with is re-checked after the
network round-trip, and a result that arrives once the guard has tripped
comes back as DISCARDED with the validator untouched.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional

from orderboard.api_client import OrderServiceClient
from orderboard.diagnostics import BoardDiagnostics
from orderboard.exceptions import AuthorizationFailedError, InvalidOrderDataError, OrderBoardError
from orderboard.logging_config import logger
from orderboard.models import Order


class OutcomeKind(str, Enum):
    NOT_MODIFIED = "not_modified"
    UPDATED = "updated"
    EMPTY = "empty"
    FAILED = "failed"
    DISCARDED = "discarded"
    SKIPPED = "skipped"


@dataclass
class FetchOutcome:
    """What one refresh produced"""
    kind: OutcomeKind
    orders: List[Order] = field(default_factory=list)
    validator: Optional[str] = None
    error: Optional[OrderBoardError] = None

    @property
    def commits(self) -> bool:
        """True when the board must be replaced by this outcome"""
        return self.kind in (OutcomeKind.UPDATED, OutcomeKind.EMPTY)


class ConditionalFetchCache:
    """Holds the validator token and turns unchanged responses into no-ops"""

    def __init__(
        self,
        client: OrderServiceClient,
        guard: Callable[[], bool] = lambda: False,
        diagnostics: Optional[BoardDiagnostics] = None,
    ):
        self.client = client
        self.guard = guard
        self.diagnostics = diagnostics or BoardDiagnostics()
        self._validator: Optional[str] = None

    @property
    def validator(self) -> Optional[str]:
        return self._validator

    def clear_validator(self, reason: str = "") -> None:
        """Forget the validator so the next fetch is a full one"""
        if self._validator is not None:
            logger.debug(f"Clearing validator {self._validator}" + (f" ({reason})" if reason else ""))
        self._validator = None

    def _parse_orders(self, records: List[dict]) -> List[Order]:
        orders = []
        for record in records:
            try:
                orders.append(Order.from_dict(record))
            except InvalidOrderDataError as e:
                self.diagnostics.record("invalid_records")
                logger.warning(f"Skipping order record: {e.message}", extra={"record": record})
        return orders

    async def refresh(
        self,
        force: bool = False,
        guard: Optional[Callable[[], bool]] = None,
    ) -> FetchOutcome:
        """
        Fetch today's orders.

        Args:
            force: Send no If-None-Match, so the server must answer with the full body
            guard: Stale check for this request only, used instead of the cache-wide guard

        Returns:
            FetchOutcome - NOT_MODIFIED, UPDATED, EMPTY, FAILED, or DISCARDED when the
            guard tripped while the request was in flight
        """
        guard = guard or self.guard
        sent_validator = None if force else self._validator
        try:
            response = await self.client.get_today_orders(sent_validator)
        except AuthorizationFailedError as e:
            self.diagnostics.record("auth_failures")
            self.clear_validator("authorization failure")
            return FetchOutcome(OutcomeKind.FAILED, error=e)
        except OrderBoardError as e:
            logger.warning(f"Failed to fetch orders: {e.message}", extra={"error_code": e.code})
            return FetchOutcome(OutcomeKind.FAILED, error=e)

        if response.not_modified:
            return FetchOutcome(OutcomeKind.NOT_MODIFIED, validator=self._validator)

        # Re-check: the board may have changed during the round-trip
        if guard():
            self.diagnostics.record("stale_results_discarded")
            logger.log_stale_result("poll", "board changed while the request was in flight")
            return FetchOutcome(OutcomeKind.DISCARDED)

        if response.has_data:
            orders = self._parse_orders(response.orders)
            self._validator = response.etag
            return FetchOutcome(OutcomeKind.UPDATED, orders=orders, validator=response.etag)

        self._validator = response.etag
        return FetchOutcome(OutcomeKind.EMPTY, validator=response.etag)

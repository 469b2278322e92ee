"""
Custom Exceptions for the Order Board
=====================================

Use these instead of generic Exception so callers can tell a timeout
from a server-reported error, and an auth failure from both.

Usage:
    from orderboard.exceptions import RequestTimeoutError, RemoteServiceError

    try:
        await client.update_order(order_id, {"driverName": "Somchai"})
    except RequestTimeoutError:
        logger.warning("Order service timed out")
    except RemoteServiceError as e:
        logger.error(f"Order service rejected update: {e}")
        raise
"""

from typing import Optional, Any, Dict


class OrderBoardError(Exception):
    """Base exception for all order board errors"""

    def __init__(
        self,
        message: str,
        code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


# ============================================
# Remote Order Service Errors
# ============================================

class RemoteServiceError(OrderBoardError):
    """Order service answered with a non-success status"""

    def __init__(self, status_code: int, message: str = "API request failed", endpoint: str = ""):
        super().__init__(
            message,
            code="REMOTE_SERVICE_ERROR",
            details={"status_code": status_code, "endpoint": endpoint}
        )
        self.status_code = status_code


class AuthorizationFailedError(RemoteServiceError):
    """401/403 from the order service - the session is no longer valid"""

    def __init__(self, status_code: int = 401, endpoint: str = ""):
        super().__init__(status_code, "Session expired or unauthorized.", endpoint)
        self.code = "NOT_AUTHORIZED"


class RequestTimeoutError(OrderBoardError):
    """Client-side timeout expired before the order service answered"""

    status_code = 408

    def __init__(self, timeout: float, endpoint: str = ""):
        super().__init__(
            f"Request timed out after {timeout:g} seconds.",
            code="REQUEST_TIMEOUT",
            details={"timeout": timeout, "endpoint": endpoint}
        )


class RemoteConnectionError(OrderBoardError):
    """Transport failure: DNS, refused connection, reset"""

    def __init__(self, message: str, endpoint: str = ""):
        super().__init__(message, code="CONNECTION_ERROR", details={"endpoint": endpoint})


# ============================================
# Board State Errors
# ============================================

class InvalidOrderDataError(OrderBoardError):
    """Order record cannot be used (no id)"""

    def __init__(self, message: str = "Invalid order data"):
        super().__init__(message, code="INVALID_ORDER_DATA")


class InvalidTransitionError(OrderBoardError):
    """Drag session asked to move between states it cannot"""

    def __init__(self, from_state: str, to_state: str):
        super().__init__(
            f"Invalid drag transition: {from_state} → {to_state}",
            code="INVALID_TRANSITION",
            details={"from_state": from_state, "to_state": to_state}
        )


class BoardInvariantError(OrderBoardError):
    """Columns and flat order list disagree"""

    def __init__(self, message: str, order_id: Optional[str] = None):
        details = {"order_id": order_id} if order_id else {}
        super().__init__(message, code="BOARD_INVARIANT", details=details)

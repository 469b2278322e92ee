"""
Order Board - Centralized Logging Configuration
Supports both development (plain text) and production (JSON structured) logging
"""

import logging
import sys
import json
import traceback
import uuid
from datetime import datetime
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar

from orderboard.config import BoardConfig


# Context variable for tracing one board session across poll/write/gesture handlers
board_session_var: ContextVar[str] = ContextVar('board_session', default='')


def get_board_session() -> str:
    """Get current board session ID from context"""
    return board_session_var.get() or ''


def set_board_session(session_id: str) -> None:
    """Set board session ID in context"""
    board_session_var.set(session_id)


def generate_session_id() -> str:
    """Generate a short unique board session ID"""
    return str(uuid.uuid4())[:8]


_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'taskName', 'board_session',
}


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging
    Outputs one JSON object per line, easy to ship to a log aggregator
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.utcnow().isoformat() + "Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        session_id = get_board_session()
        if session_id:
            log_data["board_session"] = session_id

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info) if record.exc_info[0] else None
            }

        # Extra fields passed through `extra=`
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith('_'):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ContextualFormatter(logging.Formatter):
    """
    Readable formatter that includes the board session ID
    """

    def format(self, record: logging.LogRecord) -> str:
        record.board_session = get_board_session() or '-'
        return super().format(record)


class BoardLogger(logging.Logger):
    """
    Custom logger with convenience methods for structured logging
    """

    def log_request(self, method: str, path: str, status_code: int,
                    duration_ms: float, **kwargs) -> None:
        """Log HTTP request details"""
        self.debug(
            f"HTTP {method} {path} - {status_code} ({duration_ms:.2f}ms)",
            extra={
                "event_type": "http_request",
                "http_method": method,
                "http_path": path,
                "http_status": status_code,
                "duration_ms": duration_ms,
                **kwargs
            }
        )

    def log_poll_outcome(self, outcome: str, order_count: int = 0,
                         validator: Optional[str] = None, **kwargs) -> None:
        """Log the result of one conditional refresh"""
        self.info(
            f"Poll {outcome}" + (f" ({order_count} orders)" if order_count else ""),
            extra={
                "event_type": "poll",
                "poll_outcome": outcome,
                "order_count": order_count,
                "validator": validator,
                **kwargs
            }
        )

    def log_stale_result(self, source: str, reason: str, **kwargs) -> None:
        """Log a result that arrived after its guard tripped and was discarded"""
        self.info(
            f"Discarded stale {source} result: {reason}",
            extra={
                "event_type": "stale_result",
                "stale_source": source,
                "stale_reason": reason,
                **kwargs
            }
        )

    def log_write_back(self, order_id: str, fields: Dict[str, Any], success: bool,
                       reason: Optional[str] = None, **kwargs) -> None:
        """Log an upstream write of order fields"""
        level = logging.INFO if success else logging.ERROR
        self.log(
            level,
            f"Write order {order_id} {fields}: {'synced' if success else 'failed'}" +
            (f" - {reason}" if reason else ""),
            extra={
                "event_type": "write_back",
                "order_id": order_id,
                "write_fields": fields,
                "write_success": success,
                "failure_reason": reason,
                **kwargs
            }
        )

    def log_unexpected_state(self, message: str, **kwargs) -> None:
        """Log a recovered consistency hazard"""
        self.warning(
            f"Unexpected board state: {message}",
            extra={
                "event_type": "unexpected_state",
                **kwargs
            }
        )

    def log_error_with_context(self, error: Exception, context: str = None,
                               **kwargs) -> None:
        """Log error with full context"""
        self.error(
            f"Error in {context}: {type(error).__name__}: {str(error)}",
            exc_info=True,
            extra={
                "event_type": "error",
                "error_type": type(error).__name__,
                "error_message": str(error),
                "error_context": context,
                **kwargs
            }
        )


def setup_logging(config: Optional[BoardConfig] = None) -> BoardLogger:
    """Setup logging configuration from board config"""
    config = config or BoardConfig()

    logging.setLoggerClass(BoardLogger)

    logger = logging.getLogger("orderboard")
    logger.__class__ = BoardLogger  # Ensure it's our custom class
    logger.setLevel(getattr(logging, str(config.log_level).upper(), logging.INFO))

    logger.handlers.clear()

    if config.log_json:
        formatter: logging.Formatter = JSONFormatter()
        file_formatter: logging.Formatter = formatter
    else:
        formatter = ContextualFormatter("%(levelname)-8s | [%(board_session)s] %(message)s")
        file_formatter = ContextualFormatter(
            "%(asctime)s | %(levelname)-8s | [%(board_session)s] | "
            "%(funcName)s:%(lineno)d | %(message)s"
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logger.level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if config.log_file:
        log_file = Path(config.log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=10485760,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        logger.addHandler(file_handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logger.debug(
        "Logging initialized",
        extra={"log_level": config.log_level, "json_logging": config.log_json}
    )

    return logger


# Create logger instance
logger: BoardLogger = setup_logging()


__all__ = [
    'logger',
    'setup_logging',
    'get_board_session',
    'set_board_session',
    'generate_session_id',
    'BoardLogger',
    'JSONFormatter',
    'ContextualFormatter',
]

"""
Structured JSON logging with table context and staging levels.

Provides logging for the staging engine with:
- JSON format for log aggregation
- The table being staged attached to every record
- DETAIL and TRACE levels below INFO for per-statement output
- Performance tracking of staging passes
"""

import logging
import json
import time
from contextvars import ContextVar
from typing import Optional
from datetime import datetime, timezone

# Levels used for SQL text and per-record output
DETAIL = 15
TRACE = 5
logging.addLevelName(DETAIL, "DETAIL")
logging.addLevelName(TRACE, "TRACE")

# Context variable for the table currently being staged
table_ctx: ContextVar[Optional[str]] = ContextVar("table", default=None)


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Outputs logs in JSON format with standardized fields.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        table = table_ctx.get()
        if table:
            log_data["table"] = table

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        return json.dumps(log_data, default=str)


class StageLogger:
    """
    Leveled logger used by the staging engine.

    Automatically includes the current table in all log messages.
    """

    def __init__(self, logger: logging.Logger):
        """Initialize with base logger."""
        self.logger = logger

    def _log(self, level: int, msg: str, **kwargs):
        """Log with structured extra fields."""
        if not self.logger.isEnabledFor(level):
            return
        extra_fields = kwargs.copy()
        table = table_ctx.get()
        if table and "table" not in extra_fields:
            extra_fields["table"] = table

        record = self.logger.makeRecord(
            self.logger.name,
            level,
            "(unknown file)",
            0,
            msg,
            (),
            None,
        )
        record.extra_fields = extra_fields
        self.logger.handle(record)

    def trace(self, msg: str, **kwargs):
        """Log per-record output."""
        self._log(TRACE, msg, **kwargs)

    def detail(self, msg: str, **kwargs):
        """Log SQL text and staging progress."""
        self._log(DETAIL, msg, **kwargs)

    def debug(self, msg: str, **kwargs):
        self._log(logging.DEBUG, msg, **kwargs)

    def info(self, msg: str, **kwargs):
        self._log(logging.INFO, msg, **kwargs)

    def warning(self, msg: str, **kwargs):
        self._log(logging.WARNING, msg, **kwargs)

    def error(self, msg: str, **kwargs):
        self._log(logging.ERROR, msg, **kwargs)


class PerformanceTracker:
    """
    Context manager for tracking operation performance.

    Usage:
        with PerformanceTracker("analyze", logger, table="user_users"):
            # ... run the pass
            pass
    """

    def __init__(
        self,
        operation: str,
        logger: logging.Logger,
        log_level: int = DETAIL,
        **extra_fields,
    ):
        """
        Initialize performance tracker.

        Args:
            operation: Operation name
            logger: Logger instance
            log_level: Log level for completion message
            **extra_fields: Additional structured fields
        """
        self.operation = operation
        self.logger = logger
        self.log_level = log_level
        self.extra_fields = extra_fields
        self.start_time: Optional[float] = None
        self.duration: Optional[float] = None

    def __enter__(self):
        """Start timing."""
        self.start_time = time.time()
        extra = {"operation": self.operation, **self.extra_fields}
        self.logger.log(
            logging.DEBUG,
            f"Starting operation: {self.operation}",
            extra={"extra_fields": extra},
        )
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Log completion with duration."""
        self.duration = time.time() - self.start_time
        extra = {
            "operation": self.operation,
            "duration_ms": round(self.duration * 1000, 2),
            **self.extra_fields,
        }

        if exc_type:
            extra["error"] = str(exc_val)
            extra["error_type"] = exc_type.__name__
            self.logger.error(
                f"Operation failed: {self.operation}",
                extra={"extra_fields": extra},
            )
        else:
            self.logger.log(
                self.log_level,
                f"Operation completed: {self.operation}",
                extra={"extra_fields": extra},
            )


def setup_logging(log_level: str = "INFO", json_format: bool = True):
    """
    Configure application logging.

    Args:
        log_level: Log level (TRACE, DEBUG, DETAIL, INFO, WARNING, ERROR)
        json_format: Use JSON formatting if True, standard format if False
    """
    level = logging.getLevelName(log_level.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {log_level}")

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)

    if json_format:
        formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )

    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # SQL echo is handled by our own DETAIL output
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


def set_current_table(table: Optional[str]) -> None:
    """Set the table being staged in context."""
    table_ctx.set(table)


def get_current_table() -> Optional[str]:
    """Get the table being staged from context."""
    return table_ctx.get()


def get_stage_logger(name: str) -> StageLogger:
    """
    Get a staging logger instance.

    Args:
        name: Logger name

    Returns:
        StageLogger instance
    """
    return StageLogger(logging.getLogger(name))

"""
Structured logging configuration for Postmedia.

This module provides:
- JSON structured logging with structlog
- Context enrichment (media_id, session_id)
- Performance logging for probes and exports
- Loguru sink setup for local development
"""

import logging
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from loguru import logger
from structlog.types import FilteringBoundLogger

from .config import settings

# Context variables for media tracking
media_id_ctx: ContextVar[str | None] = ContextVar("media_id", default=None)
session_id_ctx: ContextVar[str | None] = ContextVar("session_id", default=None)

_RESERVED_RECORD_FIELDS = {
    "name",
    "msg",
    "args",
    "levelname",
    "levelno",
    "pathname",
    "filename",
    "module",
    "lineno",
    "funcName",
    "created",
    "msecs",
    "relativeCreated",
    "thread",
    "threadName",
    "processName",
    "process",
    "getMessage",
    "exc_info",
    "exc_text",
    "stack_info",
    "taskName",
}


class StructlogFormatter(logging.Formatter):
    """Custom formatter to bridge between stdlib logging and structlog."""

    def __init__(self, processor):
        super().__init__()
        self.processor = processor

    def format(self, record: logging.LogRecord) -> str:
        """Format log record using structlog processor."""
        event_dict = {
            "event": record.getMessage(),
            "level": record.levelname.lower(),
            "logger": record.name,
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if media_id := media_id_ctx.get():
            event_dict["media_id"] = media_id
        if session_id := session_id_ctx.get():
            event_dict["session_id"] = session_id

        if record.exc_info:
            event_dict["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_RECORD_FIELDS:
                event_dict[key] = value

        return self.processor(None, None, event_dict)


def add_context_fields(logger, method_name, event_dict):
    """Add context fields to every log entry."""
    if media_id := media_id_ctx.get():
        event_dict["media_id"] = media_id
    if session_id := session_id_ctx.get():
        event_dict["session_id"] = session_id

    event_dict["app"] = settings.app.app_name
    event_dict["version"] = settings.app.version
    event_dict["environment"] = settings.app.environment

    return event_dict


def add_timestamps(logger, method_name, event_dict):
    """Add timestamp in ISO format."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat()
    return event_dict


def setup_structlog():
    """Configure structlog with JSON output."""
    processors = [
        add_context_fields,
        add_timestamps,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if settings.app.log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def setup_stdlib_logging():
    """Configure standard library logging to work with structlog."""
    formatter = StructlogFormatter(
        structlog.processors.JSONRenderer()
        if settings.app.log_format == "json"
        else structlog.dev.ConsoleRenderer(colors=True)
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.app.log_level))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(getattr(logging, settings.app.log_level))
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("PIL").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


def setup_loguru():
    """Configure Loguru for additional logging features."""
    logger.remove()

    log_format = (
        "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
        "<level>{level: <8}</level> | "
        "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> | "
        "<level>{message}</level>"
    )

    if settings.app.log_format == "json":
        logger.add(sys.stdout, level=settings.app.log_level, serialize=True, backtrace=True, diagnose=False)
    else:
        logger.add(
            sys.stdout, level=settings.app.log_level, format=log_format, backtrace=True, diagnose=False, colorize=True
        )


class LoggingContextManager:
    """Context manager for setting logging context."""

    def __init__(self, media_id: str | None = None, session_id: str | None = None):
        self.media_id = media_id
        self.session_id = session_id
        self._tokens = []

    def __enter__(self):
        if self.media_id:
            self._tokens.append(media_id_ctx.set(self.media_id))
        if self.session_id:
            self._tokens.append(session_id_ctx.set(self.session_id))
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        for token in reversed(self._tokens):
            token.var.reset(token)
        self._tokens.clear()


class PerformanceLogger:
    """Performance logging for media operations."""

    def __init__(self):
        self.logger = structlog.get_logger("performance")

    def log_probe(self, media_kind: str, execution_time: float, success: bool, **kwargs):
        """Log a media probe."""
        self.logger.info(
            "media_probe",
            media_kind=media_kind,
            execution_time_seconds=execution_time,
            success=success,
            metric_type="probe_performance",
            **kwargs,
        )

    def log_export(self, execution_time: float, success: bool, output_size: int = 0, **kwargs):
        """Log a transform session export."""
        self.logger.info(
            "media_export",
            execution_time_seconds=execution_time,
            success=success,
            output_size_bytes=output_size,
            metric_type="export_performance",
            **kwargs,
        )


def setup_logging():
    """Initialize all logging systems."""
    setup_structlog()
    setup_stdlib_logging()
    setup_loguru()


# Global logger instances
performance_logger = PerformanceLogger()


# Convenience functions
def get_logger(name: str = None) -> FilteringBoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def with_logging_context(media_id: str = None, session_id: str = None) -> LoggingContextManager:
    """Create logging context manager."""
    return LoggingContextManager(media_id, session_id)


def get_test_logger() -> FilteringBoundLogger:
    """Get logger configured for testing."""
    logging.getLogger().setLevel(logging.DEBUG)
    return get_logger("test")

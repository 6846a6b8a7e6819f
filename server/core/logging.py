"""Structured logging for the data access service."""

import sys
import structlog
import logging
from pathlib import Path
from typing import List, Optional
from core.config import Settings

# Third-party loggers that are too chatty at DEBUG for a polling service
NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def _handlers(settings: Settings, level: int) -> List[logging.Handler]:
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stdout)]
    if settings.log_file:
        log_path = Path(settings.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path))
    for handler in handlers:
        handler.setLevel(level)
    return handlers


def _renderer(settings: Settings):
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(
        colors=False,
        pad_event=35,
        exception_formatter=structlog.dev.plain_traceback
    )


def configure_logging(settings: Settings) -> None:
    """Route structlog through stdlib logging with the configured level and format."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        handlers=_handlers(settings, level),
        format="%(message)s",
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    # SQL echo is controlled by DATABASE_ECHO, not the root level
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )

    timestamp_fmt = "iso" if settings.log_format == "json" else "%H:%M:%S"
    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt=timestamp_fmt),
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        _renderer(settings),
    ]

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return structlog.get_logger(name)


def log_execution_time(logger: structlog.BoundLogger, operation: str,
                       execution_time_ms: float, **kwargs) -> None:
    """Log execution time with additional context."""
    logger.debug(
        "Operation completed",
        operation=operation,
        execution_time_ms=round(execution_time_ms, 2),
        **kwargs
    )


def log_query_metric(logger: structlog.BoundLogger, operation: str,
                     collection: str, execution_time_ms: float,
                     is_slow: bool) -> None:
    """Log a recorded query metric; slow queries are surfaced as warnings."""
    if is_slow:
        logger.warning(
            "Slow query detected",
            operation=operation,
            collection=collection,
            execution_time_ms=execution_time_ms,
        )
    else:
        logger.debug(
            "Query recorded",
            operation=operation,
            collection=collection,
            execution_time_ms=execution_time_ms,
        )


def log_cache_operation(logger: structlog.BoundLogger, operation: str,
                        key: str, hit: Optional[bool] = None, **kwargs) -> None:
    """Log cache operations."""
    log_data = {
        "operation": operation,
        "cache_key": key,
        **kwargs
    }

    if hit is not None:
        log_data["cache_hit"] = hit

    logger.debug("Cache operation", **log_data)

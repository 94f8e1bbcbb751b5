"""Structured logging configuration with JSON output and request context.

Uses python-json-logger for structured JSON logging so that sync passes,
webhook deliveries and package operations can be correlated in a log
aggregation system.
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any

from pythonjsonlogger import jsonlogger

from gh_updater.config import get_settings

# Request-scoped context
correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)
delivery_id_ctx: ContextVar[str | None] = ContextVar("delivery_id", default=None)
repo_ctx: ContextVar[str | None] = ContextVar("repo", default=None)


class ContextFilter(logging.Filter):
    """Log filter that copies request context onto every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_ctx.get()
        record.delivery_id = delivery_id_ctx.get() or record.correlation_id
        record.repo = getattr(record, "repo", None) or repo_ctx.get()
        try:
            from gh_updater.observability.tracing import get_trace_ids

            trace_id, span_id = get_trace_ids()
            record.trace_id = trace_id
            record.span_id = span_id
        except Exception:
            record.trace_id = None
            record.span_id = None
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """JSON formatter with standard and context fields."""

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        log_record["timestamp"] = self.formatTime(record)
        log_record["level"] = record.levelname
        log_record["logger"] = record.name

        for field in ("correlation_id", "delivery_id", "repo", "trace_id", "span_id"):
            value = getattr(record, field, None)
            if value:
                log_record[field] = value

        log_record["module"] = record.module
        log_record["function"] = record.funcName
        log_record["line"] = record.lineno


def setup_logging() -> None:
    """Configure structured logging for the application."""
    settings = get_settings()

    handler = logging.StreamHandler(sys.stdout)

    if settings.log_format == "json":
        formatter: logging.Formatter = CustomJsonFormatter(
            fmt="%(timestamp)s %(level)s %(name)s %(message)s",
            datefmt="%Y-%m-%dT%H:%M:%S%z",
        )
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s:%(lineno)d | %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )

    handler.setFormatter(formatter)
    handler.addFilter(ContextFilter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(settings.log_level)

    # Reduce verbosity of third-party loggers
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    logging.info(
        "Logging configured",
        extra={
            "environment": settings.environment,
            "log_level": settings.log_level,
            "log_format": settings.log_format,
        },
    )

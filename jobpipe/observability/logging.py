"""
Structured logging setup using structlog.

Records carry the service name, the OpenTelemetry trace ids and, inside a
worker, the worker id plus the job currently being attempted.
"""

import logging
import sys
from typing import Any
from uuid import UUID

import structlog
from opentelemetry import trace

from jobpipe import __version__
from jobpipe.config import Settings, get_settings

# Keys bound for the duration of a single job attempt
JOB_CONTEXT_KEYS = ("job_id", "job_type", "attempt")

# Third-party loggers held at WARNING (INFO when the app runs at DEBUG)
NOISY_LOGGERS = (
    "uvicorn.access",
    "sqlalchemy.engine",
    "asyncpg",
    "aiosqlite",
    "redis",
    "httpx",
    "opentelemetry.exporter",
)


def add_trace_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """
    Add OpenTelemetry trace context to log records.

    Args:
        logger: The logger instance.
        method_name: The method name being called.
        event_dict: The event dictionary.

    Returns:
        The event dictionary with trace context added.
    """
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def service_context_adder(service_name: str) -> structlog.types.Processor:
    """Build a processor stamping every record with the service name and version."""

    def add_service_context(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        event_dict.setdefault("version", __version__)
        return event_dict

    return add_service_context


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structured logging for the API, the workers and the migrate command.

    Standard library loggers are routed through the structlog renderer, so
    modules keep using ``logging.getLogger(__name__)`` with ``extra={...}``.

    Args:
        settings: Settings to read log level, format and service name from.
    """
    settings = settings or get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        service_context_adder(settings.otel_service_name),
        add_trace_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.stdlib.ExtraAdder(),
    ]

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    noisy_level = logging.INFO if log_level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(noisy_level)


def bind_context(**kwargs: Any) -> None:
    """
    Bind context variables to all subsequent log messages of the current task.

    Args:
        **kwargs: Key-value pairs to add to log context.
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def bind_job_context(job_id: UUID | str, job_type: str, attempt: int) -> None:
    """Bind the job being attempted; undone by ``unbind_job_context``."""
    structlog.contextvars.bind_contextvars(
        job_id=str(job_id),
        job_type=job_type,
        attempt=attempt,
    )


def unbind_job_context() -> None:
    """Drop the per-attempt keys, keeping the worker id bound."""
    structlog.contextvars.unbind_contextvars(*JOB_CONTEXT_KEYS)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()

"""
Structured logging setup using structlog.

Application code logs through the standard library. `setup_logging` routes
those records through structlog, so `extra` fields become keys of the
structured event and request context bound with `bind_context` is merged in.
"""

import logging
import sys
from collections.abc import Mapping
from typing import Any

import structlog
from opentelemetry import trace

from ingestq.config import get_settings
from ingestq.constants import LOG_KEY_ERROR

# Third-party loggers that are only interesting when something breaks
QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "aiosqlite")


def add_trace_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Attach the current OpenTelemetry trace and span ids, if any."""
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def describe_error(err: Mapping[str, Any]) -> str:
    """
    Render a dumped SimpleError and its causes on one line.

    Example:
        "PublishRetriesExhausted: unable to publish message <- SendFailure: unable to send message"
    """
    parts = []
    current: Any = err
    while isinstance(current, Mapping):
        parts.append(f"{current.get('name', 'SimpleError')}: {current.get('message', '')}")
        current = current.get("cause")
    return " <- ".join(parts)


def add_error_chain(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Summarize an `err` descriptor as `error_chain`, keeping the full dump."""
    err = event_dict.get(LOG_KEY_ERROR)
    if isinstance(err, Mapping) and "message" in err:
        event_dict["error_chain"] = describe_error(err)
    return event_dict


def setup_logging() -> None:
    """
    Configure structured logging for the process.

    Output is JSON or colored console text depending on `log_format`. Debug
    events, such as successful publishes, only appear at `log_level` DEBUG.
    Replaces any handlers already installed on the root logger.
    """
    settings = get_settings()
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    pre_chain: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_trace_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
        add_error_chain,
    ]

    if settings.log_format == "json":
        renderer: Any = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_context(**kwargs: Any) -> None:
    """Attach key-value pairs to every event logged in the current context."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()

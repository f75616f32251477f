"""Structured logging for the idempotency layer.

Every decision the coordinator takes is logged as a structlog event with a
dotted name (``idempotency.reserved``, ``idempotency.replayed``, ...) and the
cache key and execution id bound as fields, so one grep over a log stream
reconstructs the history of a single idempotency key.

Examples:
    Configure logging once at startup::

        from idempotent_api.observability.logging import configure_logging

        configure_logging(level="INFO", json_output=True)

    Log from a module::

        from idempotent_api.observability.logging import get_logger

        logger = get_logger(__name__)
        logger.info("idempotency.replayed", key="POST /orders - k1", status=201)

    Output (JSON)::

        {
            "event": "idempotency.replayed",
            "key": "POST /orders - k1",
            "status": 201,
            "timestamp": "2024-01-01T00:00:00.000000Z",
            "level": "info"
        }
"""

import logging
import sys
from typing import Any

import structlog


def configure_logging(
    level: str = "INFO",
    json_output: bool = True,
) -> None:
    """Configure structlog and the standard library root logger.

    Call once at application startup, before the first request is served.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: Emit JSON lines if True, colored console output otherwise
    """
    log_level = getattr(logging, level.upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level,
    )

    processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Get a structlog logger bound to ``name``.

    Examples:
        >>> logger = get_logger(__name__)
        >>> logger.warning("idempotency.entry_vanished", key="POST /orders - k1")
    """
    return structlog.get_logger(name)


def bind_request_context(**values: Any) -> None:
    """Bind fields to every event logged during the current request.

    Uses structlog's contextvars integration, so the binding is confined to
    the current asyncio task or thread.

    Examples:
        >>> bind_request_context(trace_id="abc", method="POST", path="/orders")
    """
    structlog.contextvars.bind_contextvars(**values)


def clear_request_context() -> None:
    """Drop every field bound with bind_request_context()."""
    structlog.contextvars.clear_contextvars()

"""Observability utilities for the idempotency layer.

- Prometheus metrics for request decisions and completions
- Structured logging with per-request context
"""

from idempotent_api.observability.logging import (
    bind_request_context,
    clear_request_context,
    configure_logging,
    get_logger,
)
from idempotent_api.observability.metrics import (
    record_cleanup,
    record_completion,
    record_request,
)

__all__ = [
    "bind_request_context",
    "clear_request_context",
    "configure_logging",
    "get_logger",
    "record_request",
    "record_completion",
    "record_cleanup",
]

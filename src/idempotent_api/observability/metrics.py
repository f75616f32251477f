"""Prometheus metrics for the idempotency layer.

Metrics include:

- Request decisions by outcome (owner, replay, conflict, mismatch, ...)
- Completions by outcome (cached, evicted on error, vanished, ...)
- Pending reservations gauge
- Cleanup operation tracking

Examples:
    Recording a replayed request::

        from idempotent_api.observability.metrics import record_request

        record_request(outcome="replay", status_code=201)

    Recording a completion::

        from idempotent_api.observability.metrics import record_completion

        record_completion(outcome="cached")
"""

from prometheus_client import Counter, Gauge

# Labels: outcome (see RequestOutcome), status_code ("-" when the request proceeds)
requests_total = Counter(
    "idempotency_requests_total",
    "Total number of requests seen by the idempotency layer",
    ["outcome", "status_code"],
)

# Labels: outcome (see CompletionOutcome)
completions_total = Counter(
    "idempotency_completions_total",
    "Total number of owner completions processed by the idempotency layer",
    ["outcome"],
)

# Reservations whose handler has not finished yet
pending_requests = Gauge(
    "idempotency_pending_requests",
    "Number of reservations whose owner is still executing",
)

cleanup_operations = Counter(
    "idempotency_cleanup_operations_total",
    "Total number of cleanup operations performed",
)

cleanup_records_removed = Counter(
    "idempotency_cleanup_records_removed_total",
    "Total number of expired entries removed by cleanup",
)


def record_request(outcome: str, status_code: int | None = None) -> None:
    """Record a request decision.

    Args:
        outcome: The decision outcome (owner, replay, conflict, mismatch, ...)
        status_code: Status of the short-circuit response, None if the request proceeds

    Examples:
        >>> record_request("conflict", 409)
        >>> record_request("owner")
    """
    label = str(status_code) if status_code is not None else "-"
    requests_total.labels(outcome=outcome, status_code=label).inc()


def record_completion(outcome: str) -> None:
    """Record how an owner's completion was handled."""
    completions_total.labels(outcome=outcome).inc()


def increment_pending() -> None:
    """Called when a request wins a reservation."""
    pending_requests.inc()


def decrement_pending() -> None:
    """Called when an owner's completion has been processed."""
    pending_requests.dec()


def record_cleanup(records_removed: int) -> None:
    """Record a cleanup operation.

    Args:
        records_removed: Number of expired entries removed
    """
    cleanup_operations.inc()
    cleanup_records_removed.inc(records_removed)

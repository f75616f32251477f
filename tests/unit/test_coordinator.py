"""Unit tests for the request coordinator.

This test suite covers:
    - Method filtering and key extraction failures
    - Reservation ownership, conflict, mismatch and replay decisions
    - Completion handling: caching, eviction, vanished and stale owners
"""

import uuid

import pytest

from idempotent_api.config import IdempotencyConfig
from idempotent_api.core.coordinator import (
    IdempotencyBinding,
    IdempotencyCoordinator,
    RequestDescriptor,
)
from idempotent_api.core.replay import CapturedResponse
from idempotent_api.core.state_machine import CONFLICT_MESSAGE, MISMATCH_MESSAGE
from idempotent_api.fingerprint import compute_fingerprint
from idempotent_api.models import CompletionOutcome, RequestOutcome, TrackedRequest


def _request(
    key: str | None = "k1",
    body: bytes = b'{"amount": 100}',
    method: str = "POST",
    path: str = "/orders",
) -> RequestDescriptor:
    headers = [("content-type", "application/json")]
    if key is not None:
        headers.append(("Idempotency-Key", key))
    return RequestDescriptor.from_bytes(method, path, headers, body)


@pytest.fixture
def coordinator(store, config) -> IdempotencyCoordinator:
    return IdempotencyCoordinator(store, config)


# ============================================================================
# Before handler
# ============================================================================


@pytest.mark.asyncio
async def test_disabled_method_is_not_applicable(coordinator, store) -> None:
    decision = await coordinator.before_handler(_request(method="GET", body=b""))

    assert decision.outcome == RequestOutcome.NOT_APPLICABLE
    assert decision.proceed is True
    assert decision.binding is None
    assert await store.count() == 0


@pytest.mark.asyncio
async def test_method_matching_is_case_insensitive(store) -> None:
    coordinator = IdempotencyCoordinator(store, IdempotencyConfig(enabled_methods=["post"]))

    decision = await coordinator.before_handler(_request(method="post"))

    assert decision.outcome == RequestOutcome.OWNER


@pytest.mark.asyncio
async def test_missing_key_is_bad_request(coordinator, store) -> None:
    decision = await coordinator.before_handler(_request(key=None))

    assert decision.outcome == RequestOutcome.BAD_REQUEST
    assert decision.status_code == 400
    assert "No Idempotency-Key request header found" in decision.body
    assert decision.proceed is False
    assert await store.count() == 0


@pytest.mark.asyncio
async def test_multiple_keys_is_bad_request(coordinator) -> None:
    request = RequestDescriptor.from_bytes(
        "POST",
        "/orders",
        [("Idempotency-Key", "a"), ("idempotency-key", "b")],
        b"{}",
    )

    decision = await coordinator.before_handler(request)

    assert decision.status_code == 400
    assert "Multiple Idempotency-Key request headers" in decision.body


@pytest.mark.asyncio
async def test_blank_key_is_bad_request(coordinator) -> None:
    decision = await coordinator.before_handler(_request(key="   "))

    assert decision.status_code == 400
    assert decision.body == "Idempotency-Key request header has invalid value."


@pytest.mark.asyncio
async def test_first_request_owns_reservation(coordinator, store) -> None:
    decision = await coordinator.before_handler(_request())

    assert decision.outcome == RequestOutcome.OWNER
    assert decision.proceed is True
    assert decision.token == "k1"
    assert decision.binding.key == "POST /orders - k1"
    assert decision.binding.token == "k1"

    entry = await store.get("POST /orders - k1")
    assert entry.execution_id == decision.binding.execution_id
    assert entry.fingerprint == compute_fingerprint(b'{"amount": 100}', None, "/orders")
    assert entry.is_done is False


@pytest.mark.asyncio
async def test_execution_ids_are_fresh_per_attempt(coordinator) -> None:
    first = await coordinator.before_handler(_request(key="k1"))
    second = await coordinator.before_handler(_request(key="k2"))

    assert first.binding.execution_id != second.binding.execution_id


@pytest.mark.asyncio
async def test_concurrent_duplicate_is_conflict(coordinator) -> None:
    await coordinator.before_handler(_request())

    decision = await coordinator.before_handler(_request())

    assert decision.outcome == RequestOutcome.CONFLICT
    assert decision.status_code == 409
    assert decision.body == CONFLICT_MESSAGE
    assert decision.binding is None


@pytest.mark.asyncio
async def test_pending_entry_conflicts_even_for_different_payload(coordinator) -> None:
    await coordinator.before_handler(_request(body=b'{"amount": 100}'))

    decision = await coordinator.before_handler(_request(body=b'{"amount": 999}'))

    assert decision.status_code == 409


@pytest.mark.asyncio
async def test_replay_after_completion(coordinator, store, sample_response) -> None:
    owner = await coordinator.before_handler(_request())
    await coordinator.after_handler(owner.binding, result=sample_response)

    decision = await coordinator.before_handler(_request())

    assert decision.outcome == RequestOutcome.REPLAY
    assert decision.proceed is False
    assert decision.response == sample_response
    assert decision.token == "k1"


@pytest.mark.asyncio
async def test_replayed_response_is_independent_copy(coordinator, store, sample_response) -> None:
    owner = await coordinator.before_handler(_request())
    await coordinator.after_handler(owner.binding, result=sample_response)

    first = await coordinator.before_handler(_request())
    first.response.headers.append(("x-mutated", "yes"))
    first.response.status = 500
    second = await coordinator.before_handler(_request())

    assert ("x-mutated", "yes") not in second.response.headers
    assert second.response.status == 201
    stored = (await store.get("POST /orders - k1")).result
    assert stored.status == 201
    assert stored is not sample_response


@pytest.mark.asyncio
async def test_mismatch_after_completion(coordinator, sample_response) -> None:
    owner = await coordinator.before_handler(_request(body=b'{"amount": 100}'))
    await coordinator.after_handler(owner.binding, result=sample_response)

    decision = await coordinator.before_handler(_request(body=b'{"amount": 200}'))

    assert decision.outcome == RequestOutcome.MISMATCH
    assert decision.status_code == 422
    assert decision.body == MISMATCH_MESSAGE


@pytest.mark.asyncio
async def test_same_key_on_other_path_is_independent(coordinator, sample_response) -> None:
    owner = await coordinator.before_handler(_request(path="/orders"))
    await coordinator.after_handler(owner.binding, result=sample_response)

    decision = await coordinator.before_handler(_request(path="/payments"))

    assert decision.outcome == RequestOutcome.OWNER


@pytest.mark.asyncio
async def test_unsupported_cached_result_proceeds(coordinator, store) -> None:
    fingerprint = compute_fingerprint(b'{"amount": 100}', None, "/orders")
    entry = TrackedRequest(execution_id=str(uuid.uuid4()), fingerprint=fingerprint)
    entry.record_result("<html>not structured</html>")
    await store.reserve_or_fetch("POST /orders - k1", lambda: entry, ttl_seconds=60)

    decision = await coordinator.before_handler(_request())

    assert decision.outcome == RequestOutcome.UNSUPPORTED_CACHED
    assert decision.proceed is True
    assert decision.binding is None
    assert (await store.get("POST /orders - k1")) is entry


@pytest.mark.asyncio
async def test_reservation_expires_after_window(coordinator, store, clock) -> None:
    await coordinator.before_handler(_request())
    clock.advance(coordinator.config.sliding_expiration_seconds)

    decision = await coordinator.before_handler(_request())

    assert decision.outcome == RequestOutcome.OWNER


# ============================================================================
# After handler
# ============================================================================


@pytest.mark.asyncio
async def test_result_is_cached(coordinator, store, sample_response) -> None:
    owner = await coordinator.before_handler(_request())

    outcome = await coordinator.after_handler(owner.binding, result=sample_response)

    assert outcome == CompletionOutcome.CACHED
    entry = await store.get("POST /orders - k1")
    assert entry.is_done is True
    assert entry.result == sample_response
    assert entry.result is not sample_response


@pytest.mark.asyncio
async def test_error_evicts_reservation(coordinator, store) -> None:
    owner = await coordinator.before_handler(_request())

    outcome = await coordinator.after_handler(owner.binding, error=RuntimeError("boom"))

    assert outcome == CompletionOutcome.EVICTED_ON_ERROR
    assert await store.get("POST /orders - k1") is None

    retry = await coordinator.before_handler(_request())
    assert retry.outcome == RequestOutcome.OWNER
    assert retry.binding.execution_id != owner.binding.execution_id


@pytest.mark.asyncio
async def test_error_wins_over_result(coordinator, store, sample_response) -> None:
    owner = await coordinator.before_handler(_request())

    outcome = await coordinator.after_handler(
        owner.binding, result=sample_response, error=ValueError("bad")
    )

    assert outcome == CompletionOutcome.EVICTED_ON_ERROR
    assert await store.count() == 0


@pytest.mark.asyncio
async def test_unsupported_result_evicts_reservation(coordinator, store) -> None:
    owner = await coordinator.before_handler(_request())
    html = CapturedResponse(200, {"content-type": "text/html"}, b"<p>ok</p>")

    outcome = await coordinator.after_handler(owner.binding, result=html)

    assert outcome == CompletionOutcome.EVICTED_UNSUPPORTED
    assert await store.get("POST /orders - k1") is None


@pytest.mark.asyncio
async def test_none_result_evicts_reservation(coordinator, store) -> None:
    owner = await coordinator.before_handler(_request())

    outcome = await coordinator.after_handler(owner.binding, result=None)

    assert outcome == CompletionOutcome.EVICTED_UNSUPPORTED
    assert await store.count() == 0


@pytest.mark.asyncio
async def test_vanished_entry(coordinator, store, sample_response) -> None:
    owner = await coordinator.before_handler(_request())
    await store.remove("POST /orders - k1")

    outcome = await coordinator.after_handler(owner.binding, result=sample_response)

    assert outcome == CompletionOutcome.VANISHED
    assert await store.count() == 0


@pytest.mark.asyncio
async def test_stale_owner_does_not_overwrite(coordinator, store, clock, sample_response) -> None:
    stale = await coordinator.before_handler(_request())
    clock.advance(coordinator.config.sliding_expiration_seconds + 1)
    current = await coordinator.before_handler(_request())

    outcome = await coordinator.after_handler(stale.binding, result=sample_response)

    assert outcome == CompletionOutcome.STALE_OWNER
    entry = await store.get("POST /orders - k1")
    assert entry.execution_id == current.binding.execution_id
    assert entry.is_done is False

    assert await coordinator.after_handler(current.binding, result=sample_response) == (
        CompletionOutcome.CACHED
    )


@pytest.mark.asyncio
async def test_no_binding(coordinator, sample_response) -> None:
    assert await coordinator.after_handler(None, result=sample_response) == (
        CompletionOutcome.NO_BINDING
    )


@pytest.mark.asyncio
async def test_unknown_binding_is_vanished(coordinator, sample_response) -> None:
    binding = IdempotencyBinding("POST /orders - never", "never", str(uuid.uuid4()))

    assert await coordinator.after_handler(binding, result=sample_response) == (
        CompletionOutcome.VANISHED
    )


# ============================================================================
# Form requests
# ============================================================================


@pytest.mark.asyncio
async def test_form_fields_take_part_in_fingerprint(coordinator, sample_response) -> None:
    headers = [
        ("content-type", "application/x-www-form-urlencoded"),
        ("Idempotency-Key", "form-1"),
    ]
    first = RequestDescriptor.from_bytes(
        "POST", "/orders", headers, b"item=a", form_fields=[("item", "a")]
    )
    owner = await coordinator.before_handler(first)
    await coordinator.after_handler(owner.binding, result=sample_response)

    other = RequestDescriptor.from_bytes(
        "POST", "/orders", headers, b"item=a", form_fields=[("item", "b")]
    )
    decision = await coordinator.before_handler(other)

    assert decision.outcome == RequestOutcome.MISMATCH

"""Outcome decision for requests that reached the idempotency store.

A tracked request has two states, inferred from whether it holds a result:

    pending -> done

Given the entry returned by the store's atomic reserve-or-fetch, the decision
is evaluated in a fixed order:

1. The entry carries this request's execution id: this request created the
   reservation and owns it (OWNER).
2. The entry is still pending: the original request is in flight (CONFLICT).
3. The entry's fingerprint differs: the key was reused for another payload
   (MISMATCH).
4. The entry holds the supported structured response: replay it (REPLAY).
5. Anything else is an unsupported stored result (UNSUPPORTED_CACHED).

Examples:
    >>> entry = TrackedRequest(execution_id=first_id, fingerprint="a" * 64)
    >>> decide_outcome(entry, first_id, "a" * 64)
    <RequestOutcome.OWNER: 'owner'>
    >>> decide_outcome(entry, second_id, "a" * 64)
    <RequestOutcome.CONFLICT: 'conflict'>
"""

from idempotent_api.models import RequestOutcome, StoredResponse, TrackedRequest

CONFLICT_MESSAGE = "The original request is still processing."
MISMATCH_MESSAGE = "The idempotency key can not be reused with a different request payload."

# Outcomes that end the request before its handler runs, with their status codes
SHORT_CIRCUIT_STATUS = {
    RequestOutcome.BAD_REQUEST: 400,
    RequestOutcome.CONFLICT: 409,
    RequestOutcome.MISMATCH: 422,
}


def decide_outcome(entry: TrackedRequest, execution_id: str, fingerprint: str) -> RequestOutcome:
    """Decide what to do with a request given the entry stored for its key.

    Args:
        entry: The entry returned by reserve_or_fetch for the request's key
        execution_id: The execution id minted for this request attempt
        fingerprint: The fingerprint of this request's payload

    Returns:
        The outcome for this request
    """
    if entry.execution_id == execution_id:
        return RequestOutcome.OWNER

    if not entry.is_done:
        return RequestOutcome.CONFLICT

    if entry.fingerprint != fingerprint:
        return RequestOutcome.MISMATCH

    if isinstance(entry.result, StoredResponse):
        return RequestOutcome.REPLAY

    return RequestOutcome.UNSUPPORTED_CACHED


def is_cacheable_result(result: object) -> bool:
    """Only the structured response kind is ever cached."""
    return isinstance(result, StoredResponse)

"""Framework-agnostic coordination of idempotent requests.

The coordinator is invoked twice per request by a host framework adapter:

- before_handler(): derives the cache key and payload fingerprint, atomically
  reserves or fetches the tracked request for the key, and decides whether
  the request proceeds to its handler or is answered right away
- after_handler(): for the request that owns the reservation, records the
  handler's result, or evicts the reservation when the handler failed or
  produced a result that cannot be cached

Nothing is shared between the two calls except the IdempotencyBinding carried
by the decision, so the coordinator itself keeps no per-request state.

Examples:
    Wiring the coordinator into a host framework::

        store = MemoryIdempotencyStore()
        coordinator = IdempotencyCoordinator(store, IdempotencyConfig())

        decision = await coordinator.before_handler(request)
        if not decision.proceed:
            return render(decision)

        try:
            result = await handler(request)
        except Exception as exc:
            await coordinator.after_handler(decision.binding, error=exc)
            raise

        await coordinator.after_handler(decision.binding, result=result)
        return result
"""

import io
import uuid
from typing import IO, Any

from idempotent_api.config import IdempotencyConfig
from idempotent_api.core.state_machine import (
    CONFLICT_MESSAGE,
    MISMATCH_MESSAGE,
    SHORT_CIRCUIT_STATUS,
    decide_outcome,
    is_cacheable_result,
)
from idempotent_api.fingerprint import FormFields, fingerprint_request
from idempotent_api.keys import extract_key
from idempotent_api.models import (
    CompletionOutcome,
    RequestOutcome,
    StoredResponse,
    TrackedRequest,
)
from idempotent_api.observability.logging import get_logger
from idempotent_api.observability.metrics import (
    decrement_pending,
    increment_pending,
    record_completion,
    record_request,
)
from idempotent_api.storage.base import IdempotencyStore
from idempotent_api.utils.headers import HeaderSource, get_header_values

logger = get_logger(__name__)


class RequestDescriptor:
    """Abstract request representation.

    Framework adapters convert their framework-specific request objects into
    this format.

    Attributes:
        method: HTTP method (GET, POST, etc.)
        path: URL path
        headers: Request headers as (name, value) pairs or a multimap
        content_type: Value of the Content-Type header, if any
        content_length: Declared body length, if any
        body_stream: Rewindable body stream, if any
        form_fields: Parsed form fields, present only for form content types
    """

    def __init__(
        self,
        method: str,
        path: str,
        headers: HeaderSource,
        content_type: str | None = None,
        content_length: int | None = None,
        body_stream: IO[bytes] | None = None,
        form_fields: FormFields | None = None,
    ) -> None:
        self.method = method
        self.path = path
        self.headers = headers
        self.content_type = content_type
        self.content_length = content_length
        self.body_stream = body_stream
        self.form_fields = form_fields

    @classmethod
    def from_bytes(
        cls,
        method: str,
        path: str,
        headers: HeaderSource,
        body: bytes = b"",
        form_fields: FormFields | None = None,
    ) -> "RequestDescriptor":
        """Build a descriptor around an in-memory body.

        Content type is taken from the headers; content length is the body size.
        """
        content_types = get_header_values(headers, "content-type")
        return cls(
            method=method,
            path=path,
            headers=headers,
            content_type=content_types[0] if content_types else None,
            content_length=len(body),
            body_stream=io.BytesIO(body),
            form_fields=form_fields,
        )


class IdempotencyBinding:
    """Links the owner of a reservation to its completion.

    Attributes:
        key: The cache key the owner reserved
        token: The client's raw idempotency key
        execution_id: The owner's execution id
    """

    def __init__(self, key: str, token: str, execution_id: str) -> None:
        self.key = key
        self.token = token
        self.execution_id = execution_id

    def __repr__(self) -> str:
        return f"IdempotencyBinding(key={self.key!r}, execution_id={self.execution_id!r})"


class RequestDecision:
    """What the host framework should do with a request.

    Attributes:
        outcome: The decision outcome
        status_code: Status of the plain-text short-circuit response, if any
        body: Plain-text body of the short-circuit response, if any
        response: Copy of the stored response to replay, if any
        binding: Set when this request owns the reservation
        token: The client's raw idempotency key, when one was extracted
    """

    def __init__(
        self,
        outcome: RequestOutcome,
        status_code: int | None = None,
        body: str | None = None,
        response: StoredResponse | None = None,
        binding: IdempotencyBinding | None = None,
        token: str | None = None,
    ) -> None:
        self.outcome = outcome
        self.status_code = status_code
        self.body = body
        self.response = response
        self.binding = binding
        self.token = token

    @property
    def proceed(self) -> bool:
        """True when the handler should run."""
        return self.status_code is None and self.response is None


class IdempotencyCoordinator:
    """Orchestrates key extraction, fingerprinting and the store per request.

    Attributes:
        store: The process-wide idempotency store
        config: Configuration object
    """

    def __init__(self, store: IdempotencyStore, config: IdempotencyConfig | None = None) -> None:
        self.store = store
        self.config = config or IdempotencyConfig()
        self._enabled_methods = {method.upper() for method in self.config.enabled_methods}

    async def before_handler(self, request: RequestDescriptor) -> RequestDecision:
        """Decide whether a request proceeds to its handler.

        Args:
            request: The incoming request

        Returns:
            The decision for this request. When this request won the
            reservation, the decision carries the binding to pass to
            after_handler().
        """
        if request.method.upper() not in self._enabled_methods:
            logger.debug("idempotency.skipped", method=request.method, path=request.path)
            return RequestDecision(RequestOutcome.NOT_APPLICABLE)

        extraction = extract_key(
            request.method,
            request.path,
            request.headers,
            self.config.idempotency_header_key_name,
        )
        if not extraction.success:
            logger.debug(
                "idempotency.bad_request",
                method=request.method,
                path=request.path,
                reason=extraction.error.value if extraction.error else None,
            )
            return self._short_circuit(RequestOutcome.BAD_REQUEST, extraction.description)

        key: str = extraction.key  # type: ignore[assignment]
        token: str = extraction.token  # type: ignore[assignment]

        fingerprint = fingerprint_request(
            path=request.path,
            content_type=request.content_type,
            content_length=request.content_length,
            body_stream=request.body_stream,
            form_fields=request.form_fields,
        )

        execution_id = str(uuid.uuid4())

        def make_new() -> TrackedRequest:
            logger.debug("idempotency.entry_created", key=key, execution_id=execution_id)
            return TrackedRequest(execution_id=execution_id, fingerprint=fingerprint)

        entry = await self.store.reserve_or_fetch(
            key,
            make_new,
            ttl_seconds=self.config.sliding_expiration_seconds,
        )

        outcome = decide_outcome(entry, execution_id, fingerprint)

        if outcome == RequestOutcome.OWNER:
            logger.info("idempotency.reserved", key=key, execution_id=execution_id)
            record_request(outcome.value)
            increment_pending()
            return RequestDecision(
                outcome,
                binding=IdempotencyBinding(key, token, execution_id),
                token=token,
            )

        if outcome == RequestOutcome.CONFLICT:
            logger.info(
                "idempotency.conflict",
                key=key,
                original_execution_id=entry.execution_id,
                execution_id=execution_id,
            )
            return self._short_circuit(outcome, CONFLICT_MESSAGE, token)

        if outcome == RequestOutcome.MISMATCH:
            logger.info("idempotency.mismatch", key=key, execution_id=execution_id)
            return self._short_circuit(outcome, MISMATCH_MESSAGE, token)

        if outcome == RequestOutcome.REPLAY:
            stored: StoredResponse = entry.result
            logger.info(
                "idempotency.replayed",
                key=key,
                original_execution_id=entry.execution_id,
                execution_id=execution_id,
                status=stored.status,
            )
            record_request(outcome.value, stored.status)
            return RequestDecision(outcome, response=stored.duplicate(), token=token)

        logger.warning(
            "idempotency.unsupported_cached_result",
            key=key,
            result_type=type(entry.result).__name__,
        )
        record_request(outcome.value)
        return RequestDecision(outcome, token=token)

    async def after_handler(
        self,
        binding: IdempotencyBinding | None,
        result: Any = None,
        error: BaseException | None = None,
    ) -> CompletionOutcome:
        """Record the owner's result, or evict its reservation.

        Never raises for the handler's error: the caller is expected to
        re-raise it unchanged after this call.

        Args:
            binding: The binding from before_handler(), None if this request
                does not own a reservation
            result: The handler's result
            error: The exception raised by the handler, if any

        Returns:
            What happened to the reservation
        """
        if binding is None:
            return CompletionOutcome.NO_BINDING

        decrement_pending()
        key = binding.key

        if error is not None:
            logger.warning(
                "idempotency.evicted_on_error",
                key=key,
                execution_id=binding.execution_id,
                error_type=type(error).__name__,
            )
            await self.store.remove(key)
            return self._completed(CompletionOutcome.EVICTED_ON_ERROR)

        if not is_cacheable_result(result):
            logger.info(
                "idempotency.evicted_unsupported_result",
                key=key,
                execution_id=binding.execution_id,
                result_type=type(result).__name__,
            )
            await self.store.remove(key)
            return self._completed(CompletionOutcome.EVICTED_UNSUPPORTED)

        entry = await self.store.get(key)

        if entry is None:
            logger.warning(
                "idempotency.entry_vanished",
                key=key,
                execution_id=binding.execution_id,
                cached_items_count=await self.store.count(),
            )
            return self._completed(CompletionOutcome.VANISHED)

        if entry.execution_id != binding.execution_id:
            # The reservation expired mid-flight and another request owns the key now
            logger.warning(
                "idempotency.stale_owner",
                key=key,
                execution_id=binding.execution_id,
                current_execution_id=entry.execution_id,
            )
            return self._completed(CompletionOutcome.STALE_OWNER)

        entry.record_result(result.duplicate())
        logger.info("idempotency.result_cached", key=key, execution_id=binding.execution_id)
        return self._completed(CompletionOutcome.CACHED)

    def _short_circuit(
        self,
        outcome: RequestOutcome,
        message: str | None,
        token: str | None = None,
    ) -> RequestDecision:
        status_code = SHORT_CIRCUIT_STATUS[outcome]
        record_request(outcome.value, status_code)
        return RequestDecision(outcome, status_code=status_code, body=message, token=token)

    def _completed(self, outcome: CompletionOutcome) -> CompletionOutcome:
        record_completion(outcome.value)
        return outcome

"""Core type definitions and models for the idempotency layer.

This module provides the data structures shared by the fingerprinter, the key
extractor, the store and the coordinator: the structured response kind that
can be cached, the tracked request stored per idempotency key, the result of
key extraction, and the outcome enumerations reported by the coordinator.

Examples:
    Creating a tracked request for a new reservation::

        import uuid
        from idempotent_api.models import StoredResponse, TrackedRequest

        entry = TrackedRequest(
            execution_id=str(uuid.uuid4()),
            fingerprint="a" * 64,
        )
        entry.is_done  # False, the owner is still executing

    Attaching the handler's result::

        entry.record_result(
            StoredResponse.from_body(
                status=201,
                body=b'{"id": "ord_1"}',
                content_type="application/json",
            )
        )
        entry.is_done  # True
"""

import base64
from collections.abc import Mapping
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from idempotent_api.exceptions import ResultAlreadyRecordedError
from idempotent_api.utils.headers import HeaderSource, header_pairs


class RequestOutcome(str, Enum):
    """Decision taken for an inbound request before its handler runs.

    Attributes:
        NOT_APPLICABLE: Method is not idempotency-eligible, request proceeds untouched.
        BAD_REQUEST: Idempotency key header missing, repeated or blank (400).
        OWNER: Request won the reservation and proceeds to its handler.
        CONFLICT: Original request with the same key is still processing (409).
        MISMATCH: Key was reused with a different payload (422).
        REPLAY: A stored result is returned instead of running the handler.
        UNSUPPORTED_CACHED: Stored result has an unsupported type; request proceeds.
    """

    NOT_APPLICABLE = "not_applicable"
    BAD_REQUEST = "bad_request"
    OWNER = "owner"
    CONFLICT = "conflict"
    MISMATCH = "mismatch"
    REPLAY = "replay"
    UNSUPPORTED_CACHED = "unsupported_cached"


class CompletionOutcome(str, Enum):
    """What happened to a reservation after its handler ran."""

    NO_BINDING = "no_binding"
    CACHED = "cached"
    EVICTED_ON_ERROR = "evicted_on_error"
    EVICTED_UNSUPPORTED = "evicted_unsupported"
    VANISHED = "vanished"
    STALE_OWNER = "stale_owner"


class KeyExtractionErrorKind(str, Enum):
    """Reasons an idempotency key could not be derived from request headers."""

    MISSING_HEADER = "missing_header"
    MULTIPLE_HEADERS = "multiple_headers"
    EMPTY_OR_BLANK = "empty_or_blank"


class StoredResponse(BaseModel):
    """The single structured response kind that can be cached and replayed.

    The body is base64-encoded to safely handle binary content, mirroring how
    the response would be serialized by any other storage backend.

    Attributes:
        status: HTTP status code (e.g., 200, 201, 400).
        content_type: Media type of the body, e.g. "application/json".
        charset: Character encoding of the body, if declared.
        headers: HTTP response headers as ordered (name, value) pairs.
            Repeated headers such as Set-Cookie keep one pair per value.
        body_b64: Base64-encoded response body.

    Examples:
        >>> response = StoredResponse.from_body(200, b'{"ok": true}', "application/json")
        >>> response.get_body_bytes()
        b'{"ok": true}'
    """

    status: int = Field(
        ...,
        description="HTTP status code",
        ge=100,
        le=599,
        examples=[200, 201, 400],
    )
    content_type: str = Field(
        default="application/json",
        description="Media type of the response body",
        examples=["application/json", "application/problem+json"],
    )
    charset: str | None = Field(
        default="utf-8",
        description="Character encoding of the response body",
    )
    headers: list[tuple[str, str]] = Field(
        default_factory=list,
        description="HTTP response headers in their original order",
        examples=[[("content-type", "application/json"), ("set-cookie", "a=1"), ("set-cookie", "b=2")]],
    )
    body_b64: str = Field(
        ...,
        description="Base64-encoded response body",
        examples=["eyJyZXN1bHQiOiAic3VjY2VzcyJ9"],
    )

    @field_validator("body_b64")
    @classmethod
    def validate_base64(cls, v: str) -> str:
        """Validate that the body is properly base64-encoded.

        Raises:
            ValueError: If the string is not valid base64.
        """
        try:
            base64.b64decode(v, validate=True)
        except Exception as e:
            raise ValueError(f"Invalid base64 encoding: {e}") from e
        return v

    @field_validator("headers", mode="before")
    @classmethod
    def validate_headers(cls, v: Any) -> Any:
        """Accept a mapping as well as (name, value) pairs."""
        if isinstance(v, Mapping):
            return header_pairs(v)
        return v

    @classmethod
    def from_body(
        cls,
        status: int,
        body: bytes,
        content_type: str = "application/json",
        charset: str | None = "utf-8",
        headers: HeaderSource | None = None,
    ) -> "StoredResponse":
        """Build a stored response from raw body bytes."""
        return cls(
            status=status,
            content_type=content_type,
            charset=charset,
            headers=header_pairs(headers or []),
            body_b64=base64.b64encode(body).decode("ascii"),
        )

    def get_body_bytes(self) -> bytes:
        """Decode and return the response body as bytes."""
        return base64.b64decode(self.body_b64)

    def duplicate(self) -> "StoredResponse":
        """Return an independent deep copy of this response."""
        return self.model_copy(deep=True)


class TrackedRequest(BaseModel):
    """The unit stored per idempotency key.

    There is no explicit status field: a tracked request is *pending* while
    ``result`` is None and *done* once a result has been recorded.

    Attributes:
        execution_id: Unique id of the request attempt that created this entry.
        fingerprint: SHA-256 hash of the creating request's payload. Immutable.
        result: The handler's result once the owner completed, None while pending.
    """

    execution_id: str = Field(
        ...,
        description="UUID of the request attempt that created the entry",
        frozen=True,
        examples=["550e8400-e29b-41d4-a716-446655440000"],
    )
    fingerprint: str = Field(
        ...,
        description="SHA-256 hash of request payload (64 hex characters)",
        frozen=True,
        pattern=r"^[a-f0-9]{64}$",
        examples=["a" * 64],
    )
    result: Any = Field(
        default=None,
        description="Stored result, None while the owner is still executing",
    )

    @field_validator("execution_id")
    @classmethod
    def validate_execution_id(cls, v: str) -> str:
        """Validate that the execution id is a valid UUID.

        Raises:
            ValueError: If the execution id is not a valid UUID.
        """
        try:
            UUID(v)
        except ValueError as e:
            raise ValueError(f"Invalid UUID format for execution_id: {e}") from e
        return v

    @property
    def is_done(self) -> bool:
        """True once the owner's result has been recorded."""
        return self.result is not None

    def record_result(self, result: Any) -> None:
        """Attach the owner's result, moving the entry from pending to done.

        Raises:
            ValueError: If result is None.
            ResultAlreadyRecordedError: If a result was already recorded.
        """
        if result is None:
            raise ValueError("result must not be None")
        if self.result is not None:
            raise ResultAlreadyRecordedError(
                message=f"Result already recorded for execution {self.execution_id}",
                execution_id=self.execution_id,
            )
        self.result = result


class KeyExtractionResult(BaseModel):
    """Result of deriving a cache key from the idempotency header.

    Either ``success`` is True and ``key``/``token`` are set, or it is False
    and ``error``/``description`` explain why no key could be derived.

    Attributes:
        success: Whether a cache key was derived.
        key: Cache key in the form "{method} {path} - {token}".
        token: The raw header value supplied by the client.
        error: Reason for failure.
        description: Human-readable description of the failure.

    Examples:
        >>> KeyExtractionResult.ok("POST /orders - abc", "abc").key
        'POST /orders - abc'
    """

    success: bool
    key: str | None = Field(default=None, validate_default=True)
    token: str | None = None
    error: KeyExtractionErrorKind | None = Field(default=None, validate_default=True)
    description: str | None = None

    @field_validator("error")
    @classmethod
    def validate_error_with_success(
        cls, v: KeyExtractionErrorKind | None, info: Any
    ) -> KeyExtractionErrorKind | None:
        """Validate that error is present if and only if success is False."""
        if "success" in info.data:
            success = info.data["success"]
            if success and v is not None:
                raise ValueError("error must be None when success is True")
            if not success and v is None:
                raise ValueError("error must be provided when success is False")
        return v

    @field_validator("key")
    @classmethod
    def validate_key_with_success(cls, v: str | None, info: Any) -> str | None:
        """Validate that key is present if and only if success is True."""
        if "success" in info.data:
            success = info.data["success"]
            if success and not v:
                raise ValueError("key must be provided when success is True")
            if not success and v is not None:
                raise ValueError("key must be None when success is False")
        return v

    @classmethod
    def ok(cls, key: str, token: str) -> "KeyExtractionResult":
        return cls(success=True, key=key, token=token)

    @classmethod
    def failure(cls, error: KeyExtractionErrorKind, description: str) -> "KeyExtractionResult":
        return cls(success=False, error=error, description=description)

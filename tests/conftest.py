"""
Pytest configuration and shared fixtures for idempotent_api tests.
"""

import uuid

import pytest

from idempotent_api.config import IdempotencyConfig
from idempotent_api.models import StoredResponse, TrackedRequest
from idempotent_api.storage.memory import MemoryIdempotencyStore


class FakeClock:
    """Manually advanced time source for sliding-expiration tests."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock() -> FakeClock:
    """Provide a manually advanced clock."""
    return FakeClock()


@pytest.fixture
def store(clock: FakeClock) -> MemoryIdempotencyStore:
    """Provide a fresh store driven by the fake clock."""
    return MemoryIdempotencyStore(clock=clock)


@pytest.fixture
def config() -> IdempotencyConfig:
    """Provide the default configuration."""
    return IdempotencyConfig()


@pytest.fixture
def sample_idempotency_key() -> str:
    """Provide a sample idempotency key for tests."""
    return "test-key-12345"


@pytest.fixture
def sample_request_body() -> bytes:
    """Provide a sample request body for tests."""
    return b'{"data": "test"}'


@pytest.fixture
def sample_response() -> StoredResponse:
    """Provide a sample structured response."""
    return StoredResponse.from_body(
        status=201,
        body=b'{"id": "ord_1", "status": "created"}',
        content_type="application/json",
        headers={"content-type": "application/json", "location": "/orders/ord_1"},
    )


@pytest.fixture
def make_entry():
    """Provide a factory for tracked requests with fresh execution ids."""

    def factory(fingerprint: str = "a" * 64, result: object = None) -> TrackedRequest:
        entry = TrackedRequest(execution_id=str(uuid.uuid4()), fingerprint=fingerprint)
        if result is not None:
            entry.record_result(result)
        return entry

    return factory

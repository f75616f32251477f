"""
Idempotency keys for non-idempotent HTTP write operations.

A client sends a unique idempotency key with every POST or PATCH. Replays of
the same key never run the handler again: they receive the stored result, a
409 while the original request is still in flight, or a 422 when the key is
reused with a different payload.
"""

from idempotent_api.config import IdempotencyConfig
from idempotent_api.core.coordinator import (
    IdempotencyBinding,
    IdempotencyCoordinator,
    RequestDecision,
    RequestDescriptor,
)
from idempotent_api.models import (
    CompletionOutcome,
    RequestOutcome,
    StoredResponse,
    TrackedRequest,
)
from idempotent_api.storage import IdempotencyStore, MemoryIdempotencyStore

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "CompletionOutcome",
    "IdempotencyBinding",
    "IdempotencyConfig",
    "IdempotencyCoordinator",
    "IdempotencyStore",
    "MemoryIdempotencyStore",
    "RequestDecision",
    "RequestDescriptor",
    "RequestOutcome",
    "StoredResponse",
    "TrackedRequest",
]

"""Storage protocol for the idempotency cache.

This module defines the interface every idempotency store implements. The
coordinator relies on exactly one synchronization primitive, the atomic
reserve-or-fetch, so a store is correct as long as that operation is atomic
and expired entries are treated as absent.

Examples:
    Using a store::

        from idempotent_api.storage.base import IdempotencyStore

        async def reserve(store: IdempotencyStore, key: str, fingerprint: str) -> bool:
            execution_id = str(uuid.uuid4())
            entry = await store.reserve_or_fetch(
                key,
                lambda: TrackedRequest(execution_id=execution_id, fingerprint=fingerprint),
                ttl_seconds=1800,
            )
            # True when this call created the entry
            return entry.execution_id == execution_id

Thread Safety and Atomicity Requirements:
    All IdempotencyStore implementations MUST guarantee:

    1. **Atomic reservation**: reserve_or_fetch() inserts ``make_new()`` only if
       the key is absent and otherwise returns the existing entry unchanged.
       Exactly one concurrent caller's value is stored for a key.

    2. **Sliding expiration**: every reserve_or_fetch() and get() resets the
       entry's window. An entry not accessed within its window is absent.

    3. **Concurrent safety**: methods may be called concurrently from asyncio
       tasks and from OS threads.
"""

from collections.abc import Callable
from typing import Protocol, runtime_checkable

from idempotent_api.models import TrackedRequest


@runtime_checkable
class IdempotencyStore(Protocol):
    """Protocol defining the interface for idempotency stores."""

    async def reserve_or_fetch(
        self,
        key: str,
        make_new: Callable[[], TrackedRequest],
        ttl_seconds: float,
    ) -> TrackedRequest:
        """Atomically insert ``make_new()`` if the key is absent, else fetch.

        Args:
            key: The cache key.
            make_new: Factory for the entry to insert; only called when absent.
            ttl_seconds: Sliding expiration window of the entry.

        Returns:
            The stored entry, either the freshly inserted one or the existing one.

        Examples:
            >>> entry = await store.reserve_or_fetch("POST /orders - k1", factory, 1800)
        """
        ...

    async def get(self, key: str) -> TrackedRequest | None:
        """Look up an entry without creating it.

        Args:
            key: The cache key.

        Returns:
            The entry if present and not expired, None otherwise.
        """
        ...

    async def remove(self, key: str) -> None:
        """Evict an entry unconditionally. Removing an absent key is a no-op."""
        ...

    async def count(self) -> int:
        """Return the number of live entries, for diagnostics."""
        ...

    async def cleanup_expired(self) -> int:
        """Remove expired entries from storage.

        Returns:
            The number of entries removed.
        """
        ...

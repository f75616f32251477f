"""In-memory idempotency store with sliding expiration.

This module provides a process-local implementation of the IdempotencyStore
protocol. It is meant to be constructed once at application start and passed
by reference to every component that needs it.

Thread Safety:
    - A single threading.Lock guards the entry dictionary
    - No await happens while the lock is held, so the store is safe for
      asyncio tasks on one loop as well as for OS threads
    - reserve_or_fetch() checks and inserts under one lock acquisition

Expiration:
    - Every entry carries its own window and last-access time
    - An entry is expired once ``now - last_access >= ttl``
    - Expired entries are dropped lazily on access and by cleanup_expired()

Examples:
    Basic usage::

        from idempotent_api.storage.memory import MemoryIdempotencyStore

        store = MemoryIdempotencyStore()

        entry = await store.reserve_or_fetch(
            "POST /orders - k1",
            lambda: TrackedRequest(execution_id=execution_id, fingerprint=fp),
            ttl_seconds=1800,
        )

    Deterministic time in tests::

        now = [0.0]
        store = MemoryIdempotencyStore(clock=lambda: now[0])
"""

import threading
import time
from collections.abc import Callable

from idempotent_api.models import TrackedRequest
from idempotent_api.storage.base import IdempotencyStore


class _Slot:
    """A stored entry with its expiration bookkeeping."""

    __slots__ = ("entry", "ttl_seconds", "last_access")

    def __init__(self, entry: TrackedRequest, ttl_seconds: float, last_access: float) -> None:
        self.entry = entry
        self.ttl_seconds = ttl_seconds
        self.last_access = last_access

    def is_expired(self, now: float) -> bool:
        return now - self.last_access >= self.ttl_seconds


class MemoryIdempotencyStore(IdempotencyStore):
    """In-memory idempotency store with sliding expiration.

    Attributes:
        _slots: Dictionary mapping cache keys to stored entries.
        _lock: Lock protecting _slots.
        _clock: Monotonic time source in seconds.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        """Initialize a new in-memory store.

        Args:
            clock: Time source in seconds. Defaults to time.monotonic.
        """
        self._slots: dict[str, _Slot] = {}
        self._lock = threading.Lock()
        self._clock = clock

    async def reserve_or_fetch(
        self,
        key: str,
        make_new: Callable[[], TrackedRequest],
        ttl_seconds: float,
    ) -> TrackedRequest:
        """Atomically insert ``make_new()`` if the key is absent, else fetch.

        The check and the insert happen under one lock acquisition, so two
        concurrent first-time callers can never both insert. The losing
        callers' factories are never invoked. Either way the entry's sliding
        window is reset.

        Args:
            key: The cache key.
            make_new: Factory for the entry to insert.
            ttl_seconds: Sliding expiration window of a newly inserted entry.

        Returns:
            The entry stored under the key after the call.
        """
        with self._lock:
            now = self._clock()
            slot = self._live_slot(key, now)

            if slot is None:
                slot = _Slot(make_new(), ttl_seconds, now)
                self._slots[key] = slot
            else:
                slot.last_access = now

            return slot.entry

    async def get(self, key: str) -> TrackedRequest | None:
        """Look up an entry, refreshing its sliding window.

        Args:
            key: The cache key.

        Returns:
            The entry if present and not expired, None otherwise.
        """
        with self._lock:
            now = self._clock()
            slot = self._live_slot(key, now)
            if slot is None:
                return None

            slot.last_access = now
            return slot.entry

    async def remove(self, key: str) -> None:
        """Evict an entry unconditionally."""
        with self._lock:
            self._slots.pop(key, None)

    async def count(self) -> int:
        """Return the number of live entries."""
        with self._lock:
            now = self._clock()
            return sum(1 for slot in self._slots.values() if not slot.is_expired(now))

    async def cleanup_expired(self) -> int:
        """Remove expired entries from storage.

        Returns:
            The number of entries removed.
        """
        with self._lock:
            now = self._clock()
            expired_keys = [key for key, slot in self._slots.items() if slot.is_expired(now)]

            for key in expired_keys:
                del self._slots[key]

            return len(expired_keys)

    def _live_slot(self, key: str, now: float) -> _Slot | None:
        """Return the slot for key, dropping it if expired. Caller holds the lock."""
        slot = self._slots.get(key)
        if slot is None:
            return None

        if slot.is_expired(now):
            del self._slots[key]
            return None

        return slot

"""Storage backends for the idempotency cache.

All stores implement the IdempotencyStore protocol defined in base.py.

Available Stores:
    - MemoryIdempotencyStore: In-process store with sliding expiration
"""

from idempotent_api.storage.base import IdempotencyStore
from idempotent_api.storage.memory import MemoryIdempotencyStore

__all__ = [
    "IdempotencyStore",
    "MemoryIdempotencyStore",
]

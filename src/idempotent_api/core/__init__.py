"""Core idempotency logic.

- Coordinator: before/after handler hooks for a host framework
- State machine: outcome decision for a request given its stored entry
- Replay: capturing handler responses and replaying stored ones
- Cleanup: background sweep of expired entries

The core is framework-agnostic and is wrapped by adapters for specific web
frameworks.
"""

from idempotent_api.core.coordinator import (
    IdempotencyBinding,
    IdempotencyCoordinator,
    RequestDecision,
    RequestDescriptor,
)
from idempotent_api.core.replay import CapturedResponse, capture_result, replay_response
from idempotent_api.core.state_machine import decide_outcome

__all__ = [
    "IdempotencyBinding",
    "IdempotencyCoordinator",
    "RequestDecision",
    "RequestDescriptor",
    "CapturedResponse",
    "capture_result",
    "replay_response",
    "decide_outcome",
]

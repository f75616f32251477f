"""Utility modules for the idempotency layer."""

from .headers import (
    VOLATILE_HEADERS,
    add_replay_headers,
    filter_response_headers,
    get_header_values,
    header_pairs,
)

__all__ = [
    "get_header_values",
    "header_pairs",
    "filter_response_headers",
    "add_replay_headers",
    "VOLATILE_HEADERS",
]

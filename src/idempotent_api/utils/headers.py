"""Header lookup and manipulation utilities for the idempotency layer.

This module provides functions for:
- Case-insensitive lookup of every value of a request header
- Filtering volatile headers from replayed responses
- Adding replay-specific headers
"""

from collections.abc import Iterable, Mapping

# Headers that should be removed from replayed responses
# These are volatile and may differ between the original request and replay
VOLATILE_HEADERS = {
    "date",
    "server",
    "connection",
    "transfer-encoding",
    "keep-alive",
    "trailer",
    "upgrade",
    "proxy-connection",
    "proxy-authenticate",
    "proxy-authorization",
}

HeaderSource = Mapping[str, str | list[str]] | Iterable[tuple[str, str]]
HeaderPairs = list[tuple[str, str]]


def header_pairs(headers: HeaderSource) -> HeaderPairs:
    """Flatten headers into ordered ``(name, value)`` pairs.

    Repeated headers such as ``Set-Cookie`` keep one pair per value.

    Example:
        >>> header_pairs({"Accept": ["text/html", "application/json"], "X-A": "1"})
        [('Accept', 'text/html'), ('Accept', 'application/json'), ('X-A', '1')]
    """
    items = headers.items() if isinstance(headers, Mapping) else headers

    pairs: HeaderPairs = []
    for name, value in items:
        if isinstance(value, str):
            pairs.append((name, value))
        else:
            pairs.extend((name, item) for item in value)

    return pairs


def get_header_values(headers: HeaderSource, header_name: str) -> list[str]:
    """Return every value of a header, matching the name case-insensitively.

    Accepts either raw ``(name, value)`` pairs, which may repeat a name, or a
    mapping whose values are a single string or a list of strings.

    Example:
        >>> get_header_values([("Idempotency-Key", "a"), ("idempotency-key", "b")], "IDEMPOTENCY-KEY")
        ['a', 'b']
        >>> get_header_values({"Content-Type": "text/plain"}, "content-type")
        ['text/plain']
    """
    header_name_lower = header_name.lower()
    return [value for name, value in header_pairs(headers) if name.lower() == header_name_lower]


def filter_response_headers(
    headers: HeaderSource,
    additional_volatile: list[str] | None = None,
) -> HeaderPairs:
    """Filter volatile headers from response headers.

    Args:
        headers: Original response headers
        additional_volatile: Additional header names to remove (case-insensitive)

    Returns:
        Remaining headers as ordered pairs

    Example:
        >>> filter_response_headers([("Content-Type", "application/json"), ("Server", "uvicorn")])
        [('Content-Type', 'application/json')]
    """
    headers_to_remove = VOLATILE_HEADERS.copy()

    if additional_volatile:
        headers_to_remove.update(h.lower() for h in additional_volatile)

    return [(name, value) for name, value in header_pairs(headers) if name.lower() not in headers_to_remove]


def add_replay_headers(
    headers: HeaderSource,
    idempotency_key: str | None,
    replay_header_name: str = "Idempotent-Replay",
    key_header_name: str = "Idempotency-Key",
) -> HeaderPairs:
    """Add idempotency-specific headers to a replayed response.

    Existing copies of either header are dropped, whatever their case.

    Args:
        headers: Existing response headers
        idempotency_key: The client's idempotency key, echoed back when known
        replay_header_name: Name of the replay marker header
        key_header_name: Name of the header echoing the idempotency key

    Returns:
        New header pairs with replay metadata appended

    Example:
        >>> add_replay_headers([("content-type", "application/json")], "abc-123")
        [('content-type', 'application/json'), ('Idempotent-Replay', 'true'), ('Idempotency-Key', 'abc-123')]
    """
    replaced = {replay_header_name.lower(), key_header_name.lower()}
    result = [(name, value) for name, value in header_pairs(headers) if name.lower() not in replaced]

    result.append((replay_header_name, "true"))

    if idempotency_key is not None:
        result.append((key_header_name, idempotency_key))

    return result

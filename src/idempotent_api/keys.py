"""Idempotency key extraction.

The cache key binds the client's idempotency token to the method and path it
was sent with, so the same token used on two different endpoints reserves two
independent entries.
"""

from idempotent_api.models import KeyExtractionErrorKind, KeyExtractionResult
from idempotent_api.utils.headers import HeaderSource, get_header_values


def extract_key(
    method: str,
    path: str,
    headers: HeaderSource,
    key_header_name: str,
) -> KeyExtractionResult:
    """Derive the cache key for a request from its idempotency header.

    Exactly one non-blank value of ``key_header_name`` must be present. The
    header name is matched case-insensitively.

    Args:
        method: HTTP method as received
        path: URL path component
        headers: Request headers, as raw pairs or a multimap
        key_header_name: Name of the idempotency key header

    Returns:
        A successful KeyExtractionResult holding ``"{method} {path} - {token}"``,
        or a failed one describing why no key could be derived.

    Examples:
        >>> extract_key("POST", "/orders", [("Idempotency-Key", "abc123")], "Idempotency-Key").key
        'POST /orders - abc123'
        >>> extract_key("POST", "/orders", [], "Idempotency-Key").error
        <KeyExtractionErrorKind.MISSING_HEADER: 'missing_header'>
    """
    values = get_header_values(headers, key_header_name)

    if not values:
        return KeyExtractionResult.failure(
            KeyExtractionErrorKind.MISSING_HEADER,
            f"No {key_header_name} request header found in the request. "
            f"A {key_header_name} request header has to be defined!",
        )

    if len(values) > 1:
        return KeyExtractionResult.failure(
            KeyExtractionErrorKind.MULTIPLE_HEADERS,
            f"Multiple {key_header_name} request headers found in the request. "
            f"Only a single {key_header_name} request header can be defined!",
        )

    token = values[0]
    if not token or not token.strip():
        return KeyExtractionResult.failure(
            KeyExtractionErrorKind.EMPTY_OR_BLANK,
            f"{key_header_name} request header has invalid value.",
        )

    return KeyExtractionResult.ok(key=f"{method} {path} - {token}", token=token)

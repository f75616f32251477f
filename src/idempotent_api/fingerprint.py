"""Request fingerprinting for idempotency.

The fingerprint is a content hash over the request body, its form fields and
its path. It is stored with a reservation and compared on every replay of the
same idempotency key, so that a key reused for a materially different request
is rejected instead of being served someone else's result.
"""

import base64
import hashlib
import json
from collections.abc import Iterable, Mapping
from typing import IO

FORM_CONTENT_TYPES = {
    "application/x-www-form-urlencoded",
    "multipart/form-data",
}

FormFields = Mapping[str, str] | Iterable[tuple[str, str]]


def compute_fingerprint(
    body: bytes | None,
    form_fields: FormFields | None,
    path: str,
) -> str:
    """Compute a deterministic fingerprint from request payload components.

    The ordered triple (body, form fields, path) is serialized into a
    canonical JSON array, where an absent body or absent form is rendered as
    ``null``, and hashed with SHA-256:

        [<base64 body> | null, [[name, value], ...] | null, <path>]

    Args:
        body: Raw request body, or None when it is not part of the fingerprint
        form_fields: Ordered form fields, or None when the request has no form
        path: URL path component

    Returns:
        Hexadecimal SHA-256 hash string (64 characters)

    Examples:
        >>> compute_fingerprint(b'{"amount": 10}', None, "/orders")  # doctest: +SKIP
        '5d1c...'
    """
    canonical_body = base64.b64encode(body).decode("ascii") if body is not None else None
    canonical_form = _canonicalize_form(form_fields) if form_fields is not None else None

    fingerprint_input = json.dumps(
        [canonical_body, canonical_form, path],
        ensure_ascii=False,
        separators=(",", ":"),
    )

    return hashlib.sha256(fingerprint_input.encode("utf-8")).hexdigest()


def fingerprint_request(
    path: str,
    content_type: str | None,
    content_length: int | None,
    body_stream: IO[bytes] | None,
    form_fields: FormFields | None = None,
) -> str:
    """Fingerprint a request as described by the host framework.

    The body is part of the fingerprint only when the request declares a
    positive content length and the stream can be rewound; it is read from
    the start and the stream position is restored, so the handler still sees
    the full body. Form fields are part of the fingerprint only for form
    content types.

    Args:
        path: URL path component
        content_type: Value of the Content-Type header, if any
        content_length: Declared content length, if any
        body_stream: Rewindable body stream, if any
        form_fields: Parsed form fields, if any

    Returns:
        Hexadecimal SHA-256 hash string (64 characters)
    """
    has_body = content_length is not None and content_length > 0
    body = _read_rewindable(body_stream) if has_body else None

    form = form_fields if has_form_content_type(content_type) else None

    return compute_fingerprint(body, form, path)


def has_form_content_type(content_type: str | None) -> bool:
    """Check whether a Content-Type header denotes form data.

    Media type parameters such as ``boundary`` or ``charset`` are ignored.

    Examples:
        >>> has_form_content_type("multipart/form-data; boundary=xyz")
        True
        >>> has_form_content_type("application/json")
        False
    """
    if not content_type:
        return False

    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type in FORM_CONTENT_TYPES


def _read_rewindable(stream: IO[bytes] | None) -> bytes | None:
    """Read a whole stream without consuming it.

    Returns None when the stream is missing or cannot be both read and rewound.
    """
    if stream is None or not stream.readable() or not stream.seekable():
        return None

    position = stream.tell()
    try:
        stream.seek(0)
        return stream.read()
    finally:
        stream.seek(position)


def _canonicalize_form(form_fields: FormFields) -> list[list[str]]:
    """Canonicalize form fields into an ordered list of [name, value] pairs.

    Field order is preserved; repeated names keep every value in order.
    """
    items = form_fields.items() if isinstance(form_fields, Mapping) else form_fields
    return [[str(name), str(value)] for name, value in items]

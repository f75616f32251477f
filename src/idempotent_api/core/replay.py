"""Capturing handler responses and replaying stored ones.

Handler responses are captured as plain CapturedResponse objects. JSON
responses are converted into the cacheable StoredResponse kind; every other
response stays a CapturedResponse and is never cached.

Replaying a stored response:
1. Decodes the base64-encoded body
2. Filters volatile headers (Date, Server, etc.)
3. Adds replay-specific headers (Idempotent-Replay, Idempotency-Key)

Examples:
    Capturing a handler response::

        captured = CapturedResponse(
            status=201,
            headers=[("content-type", "application/json")],
            body=b'{"id": "ord_1"}',
        )
        result = capture_result(captured)  # StoredResponse

    Replaying it::

        response = replay_response(result, "client-key-1")
        # ("Idempotent-Replay", "true") in response.headers
"""

from idempotent_api.models import StoredResponse
from idempotent_api.utils.headers import (
    HeaderSource,
    add_replay_headers,
    filter_response_headers,
    get_header_values,
    header_pairs,
)


class CapturedResponse:
    """A response produced by a handler, as seen by the idempotency layer.

    Attributes:
        status: HTTP status code
        headers: Response headers as ordered (name, value) pairs
        body: Response body as bytes
    """

    def __init__(self, status: int, headers: HeaderSource, body: bytes) -> None:
        self.status = status
        self.headers = header_pairs(headers)
        self.body = body

    @property
    def content_type(self) -> str | None:
        values = get_header_values(self.headers, "content-type")
        return values[0] if values else None


def is_structured_media_type(content_type: str | None) -> bool:
    """Check whether a Content-Type denotes a JSON document.

    Examples:
        >>> is_structured_media_type("application/json; charset=utf-8")
        True
        >>> is_structured_media_type("application/problem+json")
        True
        >>> is_structured_media_type("text/html")
        False
    """
    if not content_type:
        return False

    media_type = content_type.split(";", 1)[0].strip().lower()
    return media_type == "application/json" or media_type.endswith("+json")


def capture_result(response: CapturedResponse) -> StoredResponse | CapturedResponse:
    """Convert a captured JSON response into the cacheable structured kind.

    Args:
        response: The handler's response

    Returns:
        A StoredResponse for JSON responses, the unchanged response otherwise
    """
    content_type = response.content_type
    if not is_structured_media_type(content_type):
        return response

    media_type, _, params = content_type.partition(";")  # type: ignore[union-attr]
    charset = None
    for param in params.split(";"):
        name, _, value = param.strip().partition("=")
        if name.lower() == "charset" and value:
            charset = value.strip('"')

    return StoredResponse.from_body(
        status=response.status,
        body=response.body,
        content_type=media_type.strip(),
        charset=charset,
        headers=response.headers,
    )


def replay_response(
    stored: StoredResponse,
    idempotency_key: str | None,
    replay_header_name: str = "Idempotent-Replay",
    key_header_name: str = "Idempotency-Key",
) -> CapturedResponse:
    """Reconstruct an HTTP response from a stored result.

    Args:
        stored: The stored response to replay
        idempotency_key: The client's idempotency key, echoed back in a header
        replay_header_name: Name of the replay marker header
        key_header_name: Name of the header echoing the idempotency key

    Returns:
        CapturedResponse with status, headers, and body

    Examples:
        >>> stored = StoredResponse.from_body(201, b'{"id": 1}', headers={"date": "x"})
        >>> response = replay_response(stored, "k1")
        >>> response.status, response.body
        (201, b'{"id": 1}')
        >>> any(name == "date" for name, _ in response.headers)
        False
    """
    headers = filter_response_headers(stored.headers)

    if not get_header_values(headers, "content-type"):
        content_type = stored.content_type
        if stored.charset:
            content_type = f"{content_type}; charset={stored.charset}"
        headers.append(("content-type", content_type))

    headers = add_replay_headers(
        headers,
        idempotency_key,
        replay_header_name=replay_header_name,
        key_header_name=key_header_name,
    )

    return CapturedResponse(
        status=stored.status,
        headers=headers,
        body=stored.get_body_bytes(),
    )

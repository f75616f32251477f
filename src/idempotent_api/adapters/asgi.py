"""ASGI middleware adapter for FastAPI and Starlette applications.

The middleware:
1. Converts the incoming request into a RequestDescriptor
2. Asks the coordinator whether the request proceeds
3. Renders 400/409/422 decisions and replays without calling the application
4. Buffers every message the application sends and hands the complete
   response to the coordinator before forwarding it

It is a plain ASGI middleware rather than a BaseHTTPMiddleware, so an error
raised while a streaming body is produced reaches the middleware and evicts
the reservation instead of caching a truncated body.

Only JSON responses are cached. Any other response is passed through to the
client and its reservation is released, so a retry runs the handler again.

Examples:
    FastAPI integration::

        from fastapi import FastAPI
        from idempotent_api.adapters.asgi import ASGIIdempotencyMiddleware
        from idempotent_api.config import IdempotencyConfig
        from idempotent_api.storage.memory import MemoryIdempotencyStore

        app = FastAPI()

        # One store for the whole process, passed in explicitly
        store = MemoryIdempotencyStore()

        app.add_middleware(
            ASGIIdempotencyMiddleware,
            store=store,
            config=IdempotencyConfig(sliding_expiration_minutes=30),
        )

        @app.post("/api/orders")
        async def create_order(order: Order):
            return {"status": "created"}
"""

import io

from starlette.datastructures import Headers, MutableHeaders, UploadFile
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from idempotent_api.config import IdempotencyConfig
from idempotent_api.core.coordinator import IdempotencyCoordinator, RequestDescriptor
from idempotent_api.core.replay import CapturedResponse, capture_result, replay_response
from idempotent_api.exceptions import IncompleteResponseError
from idempotent_api.fingerprint import has_form_content_type
from idempotent_api.observability.logging import bind_request_context, clear_request_context
from idempotent_api.storage.base import IdempotencyStore


class ASGIIdempotencyMiddleware:
    """ASGI middleware for idempotency handling.

    Attributes:
        app: The wrapped ASGI application
        store: The process-wide idempotency store
        config: Configuration object
        coordinator: Core coordinator instance
    """

    def __init__(
        self,
        app: ASGIApp,
        store: IdempotencyStore,
        config: IdempotencyConfig | None = None,
    ) -> None:
        """Initialize the ASGI middleware.

        Args:
            app: The ASGI application
            store: The idempotency store shared by the whole process
            config: Configuration object (uses defaults if not provided)
        """
        self.app = app
        self.store = store
        self.config = config or IdempotencyConfig()
        self.coordinator = IdempotencyCoordinator(store, self.config)

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        request = Request(scope, receive)

        clear_request_context()
        bind_request_context(
            trace_id=self._extract_trace_id(request),
            method=request.method,
            path=request.url.path,
        )

        body = await request.body()
        descriptor = await self._convert_request(request, body)
        decision = await self.coordinator.before_handler(descriptor)

        if decision.status_code is not None:
            response = PlainTextResponse(decision.body or "", status_code=decision.status_code)
            await response(scope, receive, send)
            return

        if decision.response is not None:
            replayed = replay_response(
                decision.response,
                decision.token,
                replay_header_name=self.config.replay_header_name,
                key_header_name=self.config.idempotency_header_key_name,
            )
            await self._send_response(replayed, send)
            return

        downstream_receive = _replay_receive(body, receive)

        if decision.binding is None:
            await self.app(scope, downstream_receive, send)
            return

        messages: list[Message] = []

        async def buffer(message: Message) -> None:
            messages.append(message)

        try:
            await self.app(scope, downstream_receive, buffer)
        except BaseException as exc:
            await self.coordinator.after_handler(decision.binding, error=exc)
            raise

        captured = _collect_response(messages)
        if captured is None:
            error = IncompleteResponseError(
                "Application returned before completing its response",
                key=decision.binding.key,
            )
            await self.coordinator.after_handler(decision.binding, error=error)
        else:
            await self.coordinator.after_handler(decision.binding, result=capture_result(captured))

        for message in messages:
            await send(message)

    async def _convert_request(self, request: Request, body: bytes) -> RequestDescriptor:
        """Convert the request and its already-read body to a RequestDescriptor."""
        content_type = request.headers.get("content-type")
        content_length = _parse_content_length(request.headers.get("content-length"))
        if content_length is None:
            content_length = len(body)

        form_fields: list[tuple[str, str]] | None = None
        if has_form_content_type(content_type):
            form = await request.form()
            try:
                form_fields = [
                    (name, (value.filename or "") if isinstance(value, UploadFile) else value)
                    for name, value in form.multi_items()
                ]
            finally:
                await form.close()

        return RequestDescriptor(
            method=request.method,
            path=request.url.path,
            headers=request.headers.items(),
            content_type=content_type,
            content_length=content_length,
            body_stream=io.BytesIO(body),
            form_fields=form_fields,
        )

    async def _send_response(self, response: CapturedResponse, send: Send) -> None:
        """Send a replayed response, keeping repeated headers."""
        headers = MutableHeaders(raw=[])
        for name, value in response.headers:
            headers.append(name, value)
        if "content-length" not in headers:
            headers["content-length"] = str(len(response.body))

        await send(
            {
                "type": "http.response.start",
                "status": response.status,
                "headers": headers.raw,
            }
        )
        await send({"type": "http.response.body", "body": response.body})

    def _extract_trace_id(self, request: Request) -> str | None:
        """Extract distributed tracing ID from request headers."""
        trace_headers = [
            "x-trace-id",
            "x-request-id",
            "x-correlation-id",
            "traceparent",
        ]

        for header in trace_headers:
            value = request.headers.get(header)
            if value:
                return value

        return None


def _replay_receive(body: bytes, receive: Receive) -> Receive:
    """Hand the already-read body to the application, then defer to the server."""
    sent = False

    async def wrapped() -> Message:
        nonlocal sent
        if not sent:
            sent = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return wrapped


def _collect_response(messages: list[Message]) -> CapturedResponse | None:
    """Assemble buffered ASGI messages into a CapturedResponse.

    Returns None when the response was never started or never finished.
    """
    start = next((m for m in messages if m["type"] == "http.response.start"), None)
    body_messages = [m for m in messages if m["type"] == "http.response.body"]

    if start is None or not body_messages or body_messages[-1].get("more_body", False):
        return None

    return CapturedResponse(
        status=start["status"],
        headers=Headers(raw=start.get("headers", [])).items(),
        body=b"".join(m.get("body", b"") for m in body_messages),
    )


def _parse_content_length(value: str | None) -> int | None:
    """Parse a Content-Length header, ignoring malformed or negative values.

    Examples:
        >>> _parse_content_length("12")
        12
        >>> _parse_content_length("abc") is None
        True
        >>> _parse_content_length("-5") is None
        True
    """
    if value is None:
        return None

    try:
        length = int(value)
    except ValueError:
        return None

    return length if length >= 0 else None

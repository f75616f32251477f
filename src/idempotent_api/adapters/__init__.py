"""Framework adapters for the idempotency layer.

Adapters convert framework-specific requests and responses to and from the
coordinator's framework-agnostic representation:

- asgi.py: ASGI middleware for FastAPI, Starlette, etc.
"""

from idempotent_api.adapters.asgi import ASGIIdempotencyMiddleware

__all__ = ["ASGIIdempotencyMiddleware"]

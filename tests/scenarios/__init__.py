"""End-to-end scenarios for the idempotency middleware.

Each module drives a FastAPI application through TestClient and checks one
aspect of idempotent request handling.
"""

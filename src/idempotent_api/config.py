"""Configuration module for the idempotency layer.

This module provides the IdempotencyConfig class consumed by the coordinator
and the ASGI adapter: which HTTP methods are idempotency-eligible, how long a
reservation lives without being accessed, and which request header carries the
client's idempotency key.

Example:
    Basic usage with defaults:

        >>> config = IdempotencyConfig()
        >>> config.enabled_methods
        ['POST', 'PATCH']
        >>> config.sliding_expiration_minutes
        30

    Custom configuration:

        >>> config = IdempotencyConfig(
        ...     sliding_expiration_minutes=5,
        ...     idempotency_header_key_name="X-Request-Token",
        ... )

    Loading from environment:

        >>> import os
        >>> os.environ['IDEMPOTENCY_SLIDING_EXPIRATION_MINUTES'] = '10'
        >>> config = IdempotencyConfig.from_env()
"""

import os
from typing import Any

from pydantic import BaseModel, Field, field_validator

# Valid HTTP methods for idempotency
VALID_HTTP_METHODS = {
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "DELETE",
    "CONNECT",
    "OPTIONS",
    "TRACE",
    "PATCH",
}

# One week
MAX_SLIDING_EXPIRATION_MINUTES = 7 * 24 * 60


class IdempotencyConfig(BaseModel):
    """Configuration for the idempotency layer.

    Attributes:
        enabled_methods: HTTP methods that are idempotency-eligible. Requests
            with any other method pass through untouched. Default is POST and PATCH.
        sliding_expiration_minutes: Time within which a cache entry must be
            accessed before it is evicted. Every access resets the window.
            Must be between 1 and 10080 (7 days). Default is 30.
        idempotency_header_key_name: Name of the request header that carries the
            client's idempotency key. Must not be blank. Default is "Idempotency-Key".
        cleanup_interval_seconds: Interval between background sweeps of expired
            entries. Must be between 1 and 86400. Default is 300.
        replay_header_name: Response header set to "true" on replayed responses.

    Note:
        This class is immutable (frozen=True). Create a new instance if you
        need different settings.
    """

    enabled_methods: list[str] | str = Field(
        default=["POST", "PATCH"],
        description="HTTP methods that are idempotency-eligible",
    )
    sliding_expiration_minutes: int = Field(
        default=30,
        description="Sliding expiration window of cache entries in minutes (1-10080)",
    )
    idempotency_header_key_name: str = Field(
        default="Idempotency-Key",
        description="Name of the idempotency key request header",
    )
    cleanup_interval_seconds: int = Field(
        default=300,
        description="Interval between background sweeps of expired entries (1-86400)",
    )
    replay_header_name: str = Field(
        default="Idempotent-Replay",
        description="Response header marking replayed responses",
    )

    model_config = {"frozen": True}

    @field_validator("enabled_methods", mode="before")
    @classmethod
    def validate_enabled_methods(cls, v: Any) -> list[str]:
        """Validate and normalize enabled HTTP methods.

        Args:
            v: List of HTTP method strings or comma-separated string.

        Returns:
            List of uppercase, validated HTTP methods.

        Raises:
            ValueError: If any method is not a valid HTTP method.
        """
        if isinstance(v, str):
            # Handle comma-separated string (from environment variables)
            v = [method.strip() for method in v.split(",") if method.strip()]

        if not isinstance(v, list):
            raise ValueError("enabled_methods must be a list or comma-separated string")

        methods = [method.upper() for method in v]

        invalid_methods = set(methods) - VALID_HTTP_METHODS
        if invalid_methods:
            raise ValueError(
                f"Invalid HTTP methods: {', '.join(sorted(invalid_methods))}. "
                f"Valid methods are: {', '.join(sorted(VALID_HTTP_METHODS))}"
            )

        return methods

    @field_validator("sliding_expiration_minutes")
    @classmethod
    def validate_sliding_expiration_minutes(cls, v: int) -> int:
        """Validate the sliding window is within acceptable range.

        Raises:
            ValueError: If the window is not between 1 and 10080 minutes.
        """
        if not (1 <= v <= MAX_SLIDING_EXPIRATION_MINUTES):
            raise ValueError(
                f"sliding_expiration_minutes must be between 1 and "
                f"{MAX_SLIDING_EXPIRATION_MINUTES} (7 days), got {v}"
            )
        return v

    @field_validator("idempotency_header_key_name")
    @classmethod
    def validate_idempotency_header_key_name(cls, v: str) -> str:
        """Validate the header name is not blank.

        Raises:
            ValueError: If the header name is empty or whitespace-only.
        """
        if not v or not v.strip():
            raise ValueError("idempotency_header_key_name must not be blank")
        return v.strip()

    @field_validator("cleanup_interval_seconds")
    @classmethod
    def validate_cleanup_interval_seconds(cls, v: int) -> int:
        if not (1 <= v <= 86400):
            raise ValueError(f"cleanup_interval_seconds must be between 1 and 86400, got {v}")
        return v

    @property
    def sliding_expiration_seconds(self) -> int:
        """The sliding expiration window in seconds."""
        return self.sliding_expiration_minutes * 60

    @classmethod
    def from_env(cls, prefix: str = "IDEMPOTENCY_") -> "IdempotencyConfig":
        """Create configuration from environment variables.

        Variable names are uppercase field names with the prefix, e.g.
        ``IDEMPOTENCY_SLIDING_EXPIRATION_MINUTES``. Missing variables use the
        model defaults.

        Args:
            prefix: Prefix for environment variable names. Default is "IDEMPOTENCY_".

        Returns:
            IdempotencyConfig instance populated from environment variables.
        """
        config_dict: dict[str, Any] = {}

        field_types = {
            "enabled_methods": list,
            "sliding_expiration_minutes": int,
            "idempotency_header_key_name": str,
            "cleanup_interval_seconds": int,
            "replay_header_name": str,
        }

        for field_name, field_type in field_types.items():
            env_value = os.environ.get(f"{prefix}{field_name.upper()}")

            if env_value is not None:
                if field_type is int:
                    config_dict[field_name] = int(env_value)
                else:
                    # Lists stay comma-separated, the validator splits them
                    config_dict[field_name] = env_value

        return cls(**config_dict)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "IdempotencyConfig":
        """Create configuration from a dictionary.

        Raises:
            ValidationError: If the dictionary contains invalid values.
        """
        return cls(**config_dict)

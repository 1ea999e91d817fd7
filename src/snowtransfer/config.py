"""
Client configuration.

ClientOptions is frozen and validated; it is the one place users tune the
client. to_dispatcher_config() maps it onto the component dataclasses.
"""

from __future__ import annotations

import os

from pydantic import BaseModel, ConfigDict, Field, field_validator

from snowtransfer.dispatcher import DispatcherConfig
from snowtransfer.ratelimit.retry import BackoffConfig, RetryConfig
from snowtransfer.ratelimit.route import DEFAULT_MAJOR_PARAMETERS

DEFAULT_BASE_HOST = "https://discord.com"
DEFAULT_API_VERSION = 10
DEFAULT_USER_AGENT = "DiscordBot (https://github.com/DasWolke/SnowTransfer, 1.0.0)"

# Environment variables read when no token is passed explicitly
TOKEN_ENV_VAR = "DISCORD_TOKEN"


class ClientOptions(BaseModel):
    """Options for a SnowTransfer client (frozen)."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    base_host: str = Field(default=DEFAULT_BASE_HOST, description="API host, scheme included")
    api_version: int = Field(default=DEFAULT_API_VERSION, ge=6, description="REST API version")
    user_agent: str = Field(default=DEFAULT_USER_AGENT, min_length=1)

    request_timeout_ms: int = Field(
        default=15000,
        gt=0,
        description="Transport timeout for one in-flight call",
    )
    default_queue_timeout_ms: int | None = Field(
        default=None,
        gt=0,
        description="Deadline for leaving the queue (None = wait for the bucket)",
    )

    max_ratelimit_retries: int = Field(default=5, ge=0)
    max_server_retries: int = Field(default=3, ge=0)
    backoff_base_ms: int = Field(default=500, ge=0)
    backoff_max_ms: int = Field(default=30000, ge=0)

    major_parameters: tuple[str, ...] = Field(default=DEFAULT_MAJOR_PARAMETERS)
    max_idle_buckets: int = Field(default=1000, ge=1)

    @field_validator("base_host")
    @classmethod
    def _validate_base_host(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"base_host must start with http:// or https://, got {v!r}")
        return v.rstrip("/")

    @field_validator("major_parameters")
    @classmethod
    def _validate_major_parameters(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        if not v:
            raise ValueError("major_parameters must not be empty")
        normalized = tuple(p.strip("/").lower() for p in v)
        if any(not p for p in normalized):
            raise ValueError("major_parameters must not contain empty segments")
        return normalized

    @property
    def base_url(self) -> str:
        return f"{self.base_host}/api/v{self.api_version}"

    def to_dispatcher_config(self) -> DispatcherConfig:
        """Build the dispatcher configuration from these options."""
        backoff = BackoffConfig(
            base_delay_ms=self.backoff_base_ms,
            max_delay_ms=max(self.backoff_max_ms, self.backoff_base_ms),
            max_retries=self.max_server_retries,
        )
        return DispatcherConfig(
            retry=RetryConfig(backoff=backoff, max_ratelimit_retries=self.max_ratelimit_retries),
            default_timeout_ms=self.default_queue_timeout_ms,
            major_parameters=self.major_parameters,
            max_idle_buckets=self.max_idle_buckets,
        )


def resolve_token(token: str | None) -> str:
    """
    Return the explicit token, or the DISCORD_TOKEN environment variable.

    Raises:
        ValueError: If neither is set.
    """
    if token:
        return token
    token = os.environ.get(TOKEN_ENV_VAR, "")
    if not token:
        raise ValueError(f"{TOKEN_ENV_VAR} required when no token is passed")
    return token


def auth_header_value(token: str) -> str:
    """Authorization header for a token; bare tokens are treated as bot tokens."""
    if token.startswith(("Bot ", "Bearer ")):
        return token
    return f"Bot {token}"

"""
Error taxonomy for the request dispatcher.

Retryable kinds (NetworkError, ServerError) are handled by the retry
coordinator and only surface once retries are exhausted. Everything else
settles the caller's handle on first occurrence.
"""

from __future__ import annotations

from typing import Any


class SnowTransferError(Exception):
    """Base class for every failure a request handle can settle with."""

    def __init__(self, message: str, *, method: str | None = None, path: str | None = None) -> None:
        super().__init__(message)
        self.method = method
        self.path = path


class NetworkError(SnowTransferError):
    """Transport-level failure (connection reset, DNS, transport timeout)."""


class ServerError(SnowTransferError):
    """5xx response from the API."""

    def __init__(
        self,
        message: str,
        *,
        status: int,
        body: bytes = b"",
        method: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message, method=method, path=path)
        self.status = status
        self.body = body


class ClientError(SnowTransferError):
    """4xx response other than 429. Never retried."""

    def __init__(
        self,
        message: str,
        *,
        status: int,
        code: int | None = None,
        errors: Any = None,
        method: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message, method=method, path=path)
        self.status = status
        self.code = code
        self.errors = errors


class RateLimitExceeded(SnowTransferError):
    """Raised when throttling retries for a request are exhausted."""

    def __init__(
        self,
        message: str,
        *,
        retry_after_ms: int | None = None,
        is_global: bool = False,
        attempts: int = 0,
        method: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message, method=method, path=path)
        self.retry_after_ms = retry_after_ms
        self.is_global = is_global
        self.attempts = attempts


class RequestTimeout(SnowTransferError):
    """Raised when a request's deadline lapses while it is still queued."""

    def __init__(
        self,
        message: str,
        *,
        waited_ms: int = 0,
        method: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message, method=method, path=path)
        self.waited_ms = waited_ms


class RequestCancelled(SnowTransferError):
    """Raised when the caller cancelled a request before it was sent."""


class MalformedResponse(SnowTransferError):
    """Successful status, but the payload could not be parsed."""

    def __init__(
        self,
        message: str,
        *,
        status: int,
        body: bytes = b"",
        method: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message, method=method, path=path)
        self.status = status
        self.body = body

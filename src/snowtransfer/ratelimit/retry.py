"""
Retry coordination for dispatched requests.

Decides, per response or transport failure, whether a request succeeds,
fails, or goes back on its bucket:
- 429: retry after the server wait; global throttles also lock every bucket
- 5xx / network failure: exponential backoff with jitter up to a cap
- other 4xx: fail immediately, no retry
- 2xx: parse payload; an unparseable payload fails and is never retried
"""

from __future__ import annotations

import contextlib
import logging
import math
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Union

import orjson

from snowtransfer.errors import (
    ClientError,
    MalformedResponse,
    NetworkError,
    RateLimitExceeded,
    ServerError,
    SnowTransferError,
)
from snowtransfer.ratelimit.headers import RateLimitHeaders

if TYPE_CHECKING:
    from snowtransfer.ratelimit.global_lock import GlobalLock
    from snowtransfer.transport import TransportResponse
    from snowtransfer.types import PendingRequest

logger = logging.getLogger(__name__)


@dataclass
class BackoffConfig:
    """Configuration for exponential backoff on server and network errors."""

    base_delay_ms: int = 500
    max_delay_ms: int = 30000
    multiplier: float = 2.0
    jitter_factor: float = 0.5  # 0.5 = ±50% jitter
    max_retries: int = 3

    def __post_init__(self) -> None:
        if self.base_delay_ms < 0:
            raise ValueError(f"base_delay_ms must be >= 0, got {self.base_delay_ms}")
        if self.max_delay_ms < self.base_delay_ms:
            raise ValueError(
                f"max_delay_ms ({self.max_delay_ms}) must be >= base_delay_ms ({self.base_delay_ms})"
            )
        if self.multiplier < 1.0:
            raise ValueError(f"multiplier must be >= 1.0, got {self.multiplier}")
        if not 0.0 <= self.jitter_factor < 1.0:
            raise ValueError(f"jitter_factor must be in [0, 1), got {self.jitter_factor}")
        if self.max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {self.max_retries}")


@dataclass
class RetryConfig:
    """Retry limits for throttled and failed requests."""

    backoff: BackoffConfig = field(default_factory=BackoffConfig)
    max_ratelimit_retries: int = 5

    def __post_init__(self) -> None:
        if self.max_ratelimit_retries < 0:
            raise ValueError(f"max_ratelimit_retries must be >= 0, got {self.max_ratelimit_retries}")


def compute_backoff_delay(
    config: BackoffConfig,
    attempt: int,
    retry_after_ms: int | None = None,
    *,
    rng: random.Random | None = None,
) -> int:
    """
    Compute backoff delay with exponential increase and jitter.

    Respects Retry-After when provided: the delay is never shorter than what
    the server asked for.

    Args:
        config: Backoff configuration.
        attempt: Number of failed attempts so far (0 = no delay).
        retry_after_ms: Server-provided retry delay (Retry-After header).
        rng: Optional seeded Random instance for deterministic jitter.

    Returns:
        Delay in milliseconds before next retry.
    """
    if attempt <= 0:
        return 0

    delay = config.base_delay_ms * (config.multiplier ** (attempt - 1))

    jitter_min = 1.0 - config.jitter_factor
    jitter_max = 1.0 + config.jitter_factor
    if rng is not None:
        jitter_multiplier = rng.uniform(jitter_min, jitter_max)
    else:
        jitter_multiplier = random.uniform(jitter_min, jitter_max)
    delay = delay * jitter_multiplier

    delay = min(delay, config.max_delay_ms)

    if retry_after_ms is not None and retry_after_ms > 0:
        delay = max(delay, retry_after_ms)

    return int(delay)


@dataclass(frozen=True)
class Retry:
    """Put the request back on its bucket after `after_ms`."""

    after_ms: int
    is_global: bool = False
    throttled: bool = False
    reason: str = ""


@dataclass(frozen=True)
class Fail:
    """Settle the request with `error`."""

    error: SnowTransferError


@dataclass(frozen=True)
class Succeed:
    """Settle the request with the parsed payload."""

    value: Any


Decision = Union[Retry, Fail, Succeed]


def _parse_json(body: bytes) -> Any:
    if not body:
        return None
    return orjson.loads(body)


def _error_details(body: bytes) -> tuple[str | None, int | None, Any]:
    """Extract (message, code, errors) from an API error body, if JSON."""
    with contextlib.suppress(orjson.JSONDecodeError):
        data = _parse_json(body)
        if isinstance(data, dict):
            code = data.get("code")
            return (
                data.get("message"),
                code if isinstance(code, int) else None,
                data.get("errors"),
            )
    return None, None, None


def _body_retry_after_ms(value: Any) -> int | None:
    """Body `retry_after` (seconds) as ms; negative or non-numeric values are ignored."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    ms = value * 1000
    if ms < 0 or (isinstance(ms, float) and not math.isfinite(ms)):
        return None
    return round(ms)


class RetryCoordinator:
    """
    Turns a response (or transport failure) into a Retry/Fail/Succeed decision.

    Mutates only the pending request's retry counters, and the global lock
    when a throttle is flagged global.
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        global_lock: GlobalLock | None = None,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self._config = config or RetryConfig()
        self._global_lock = global_lock
        self._rng = rng

    @property
    def config(self) -> RetryConfig:
        return self._config

    def decide(
        self,
        pending: PendingRequest,
        outcome: TransportResponse | NetworkError,
    ) -> Decision:
        """
        Decide what happens to `pending` after `outcome`.

        Args:
            pending: The request that was just sent.
            outcome: The transport response, or the NetworkError it raised.

        Returns:
            Retry, Fail or Succeed.
        """
        descriptor = pending.descriptor

        if isinstance(outcome, NetworkError):
            return self._backoff(pending, outcome, retry_after_ms=None)

        status = outcome.status

        if status == 429:
            return self._throttled(pending, outcome)

        if status >= 500:
            error = ServerError(
                f"Server error ({status}) on {descriptor.method} {descriptor.path}",
                status=status,
                body=outcome.body[:2000],
                method=descriptor.method,
                path=descriptor.path,
            )
            headers = RateLimitHeaders.from_headers(outcome.headers)
            return self._backoff(pending, error, retry_after_ms=headers.retry_after_ms)

        if status >= 400:
            message, code, errors = _error_details(outcome.body)
            return Fail(
                ClientError(
                    message or f"Client error ({status}) on {descriptor.method} {descriptor.path}",
                    status=status,
                    code=code,
                    errors=errors,
                    method=descriptor.method,
                    path=descriptor.path,
                )
            )

        try:
            return Succeed(_parse_json(outcome.body))
        except orjson.JSONDecodeError as e:
            return Fail(
                MalformedResponse(
                    f"Unparseable response body ({status}): {e}",
                    status=status,
                    body=outcome.body[:2000],
                    method=descriptor.method,
                    path=descriptor.path,
                )
            )

    def _throttled(self, pending: PendingRequest, response: TransportResponse) -> Decision:
        descriptor = pending.descriptor
        headers = RateLimitHeaders.from_headers(response.headers)

        retry_after_ms = headers.retry_after_ms
        is_global = headers.is_global
        data: Any = None
        with contextlib.suppress(orjson.JSONDecodeError):
            data = _parse_json(response.body)
        if isinstance(data, dict):
            if retry_after_ms is None:
                retry_after_ms = _body_retry_after_ms(data.get("retry_after"))
            is_global = is_global or bool(data.get("global", False))
        if retry_after_ms is None:
            retry_after_ms = headers.reset_after_ms or 1000

        pending.ratelimit_attempt += 1

        # Global throttles lock every bucket even when this request gives up
        if is_global and self._global_lock is not None:
            self._global_lock.lock_for(retry_after_ms)

        if pending.ratelimit_attempt > self._config.max_ratelimit_retries:
            return Fail(
                RateLimitExceeded(
                    f"Rate limit retries ({self._config.max_ratelimit_retries}) exhausted "
                    f"on {descriptor.method} {descriptor.path}",
                    retry_after_ms=retry_after_ms,
                    is_global=is_global,
                    attempts=pending.ratelimit_attempt,
                    method=descriptor.method,
                    path=descriptor.path,
                )
            )

        logger.warning(
            "Request throttled",
            extra={
                "method": descriptor.method,
                "route": pending.bucket_key,
                "retry_after_ms": retry_after_ms,
                "global": is_global,
                "scope": headers.scope,
                "attempt": pending.ratelimit_attempt,
            },
        )
        pending.retry_count += 1
        return Retry(after_ms=retry_after_ms, is_global=is_global, throttled=True, reason="ratelimited")

    def _backoff(
        self,
        pending: PendingRequest,
        error: SnowTransferError,
        retry_after_ms: int | None,
    ) -> Decision:
        backoff = self._config.backoff
        pending.backoff_attempt += 1

        if pending.backoff_attempt > backoff.max_retries:
            logger.error(
                "Request failed after retries",
                extra={
                    "method": pending.descriptor.method,
                    "route": pending.bucket_key,
                    "attempts": pending.backoff_attempt,
                    "error": str(error),
                },
            )
            return Fail(error)

        pending.retry_count += 1
        delay_ms = compute_backoff_delay(
            backoff,
            pending.backoff_attempt,
            retry_after_ms,
            rng=self._rng,
        )
        logger.info(
            "Retrying request after error",
            extra={
                "method": pending.descriptor.method,
                "route": pending.bucket_key,
                "delay_ms": delay_ms,
                "attempt": pending.backoff_attempt,
                "error": str(error),
            },
        )
        return Retry(after_ms=delay_ms, reason=type(error).__name__)

"""Parsing of rate-limit response headers."""

from __future__ import annotations

import math
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

HEADER_LIMIT = "x-ratelimit-limit"
HEADER_REMAINING = "x-ratelimit-remaining"
HEADER_RESET = "x-ratelimit-reset"
HEADER_RESET_AFTER = "x-ratelimit-reset-after"
HEADER_BUCKET = "x-ratelimit-bucket"
HEADER_GLOBAL = "x-ratelimit-global"
HEADER_SCOPE = "x-ratelimit-scope"
HEADER_RETRY_AFTER = "retry-after"


def _get(headers: Mapping[str, str], name: str) -> str | None:
    value = headers.get(name)
    if value is None:
        # Tolerate callers that did not lower-case header names
        for key, candidate in headers.items():
            if key.lower() == name:
                return candidate
    return value


def _parse_float(value: str | None) -> float | None:
    """Parse a numeric header value; non-numeric and non-finite values become None."""
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def _parse_int(value: str | None) -> int | None:
    number = _parse_float(value)
    return int(number) if number is not None else None


def _seconds_to_ms(seconds: float) -> int | None:
    ms = seconds * 1000
    return round(ms) if math.isfinite(ms) else None


def _parse_seconds_ms(value: str | None) -> int | None:
    seconds = _parse_float(value)
    if seconds is None or seconds < 0:
        return None
    return _seconds_to_ms(seconds)


@dataclass(frozen=True)
class RateLimitHeaders:
    """
    Rate-limit information carried by one response.

    reset_after_ms is relative to when the response was received. When the
    server only sends an absolute X-RateLimit-Reset it is converted using the
    local wall clock.
    """

    limit: int | None = None
    remaining: int | None = None
    reset_after_ms: int | None = None
    bucket_id: str | None = None
    is_global: bool = False
    scope: str | None = None
    retry_after_ms: int | None = None

    @property
    def has_bucket_info(self) -> bool:
        return self.remaining is not None or self.reset_after_ms is not None

    @classmethod
    def from_headers(
        cls,
        headers: Mapping[str, str],
        *,
        wall_time_fn: Callable[[], float] | None = None,
    ) -> RateLimitHeaders:
        """Parse rate-limit headers; missing or garbled values become None."""
        reset_after_ms = _parse_seconds_ms(_get(headers, HEADER_RESET_AFTER))
        if reset_after_ms is None:
            reset_epoch = _parse_float(_get(headers, HEADER_RESET))
            if reset_epoch is not None:
                now_s = wall_time_fn() if wall_time_fn is not None else time.time()
                delta_ms = _seconds_to_ms(reset_epoch - now_s)
                if delta_ms is not None:
                    reset_after_ms = max(0, delta_ms)

        remaining = _parse_int(_get(headers, HEADER_REMAINING))
        if remaining is not None:
            remaining = max(0, remaining)

        global_flag = (_get(headers, HEADER_GLOBAL) or "").strip().lower()

        return cls(
            limit=_parse_int(_get(headers, HEADER_LIMIT)),
            remaining=remaining,
            reset_after_ms=reset_after_ms,
            bucket_id=_get(headers, HEADER_BUCKET),
            is_global=global_flag in ("true", "1"),
            scope=_get(headers, HEADER_SCOPE),
            retry_after_ms=_parse_seconds_ms(_get(headers, HEADER_RETRY_AFTER)),
        )

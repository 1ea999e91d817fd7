"""Rate-limit machinery: route keys, bucket schedulers, global lock, retry decisions."""

from snowtransfer.ratelimit.bucket import BucketScheduler, BucketState
from snowtransfer.ratelimit.global_lock import GlobalLock
from snowtransfer.ratelimit.headers import RateLimitHeaders
from snowtransfer.ratelimit.retry import (
    BackoffConfig,
    Decision,
    Fail,
    Retry,
    RetryConfig,
    RetryCoordinator,
    Succeed,
    compute_backoff_delay,
)
from snowtransfer.ratelimit.route import DEFAULT_MAJOR_PARAMETERS, RouteKeyResolver

__all__ = [
    "DEFAULT_MAJOR_PARAMETERS",
    "BackoffConfig",
    "BucketScheduler",
    "BucketState",
    "Decision",
    "Fail",
    "GlobalLock",
    "RateLimitHeaders",
    "Retry",
    "RetryConfig",
    "RetryCoordinator",
    "RouteKeyResolver",
    "Succeed",
    "compute_backoff_delay",
]

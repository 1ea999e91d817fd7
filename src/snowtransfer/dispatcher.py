"""
Request dispatcher: the single entry point for every API call.

submit() resolves the bucket key, wraps the descriptor in a PendingRequest
with a deadline, and enqueues it on that bucket's scheduler (created on first
use with an unknown limit). The returned handle settles exactly once: with
the parsed payload, a typed error, or a cancellation.

Usage:
    dispatcher = RequestDispatcher(transport, base_url="https://discord.com/api/v10")
    handle = dispatcher.submit(RouteDescriptor("GET", "/users/@me"))
    me = await handle
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any
from urllib.parse import quote, urlencode

from snowtransfer.errors import RequestCancelled, RequestTimeout
from snowtransfer.ratelimit.bucket import BucketScheduler
from snowtransfer.ratelimit.global_lock import GlobalLock
from snowtransfer.ratelimit.retry import RetryConfig, RetryCoordinator
from snowtransfer.ratelimit.route import DEFAULT_MAJOR_PARAMETERS, RouteKeyResolver
from snowtransfer.transport import EncodedPayload, encode_request
from snowtransfer.types import (
    DispatcherMetrics,
    PendingRequest,
    RequestHandle,
    RequestOptions,
    RequestState,
)

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator, Mapping

    from snowtransfer.transport import Transport, TransportResponse
    from snowtransfer.types import RouteDescriptor

logger = logging.getLogger(__name__)


@dataclass
class DispatcherConfig:
    """Configuration for the request dispatcher."""

    retry: RetryConfig = field(default_factory=RetryConfig)
    default_timeout_ms: int | None = None  # None = no queue deadline
    major_parameters: tuple[str, ...] = DEFAULT_MAJOR_PARAMETERS
    max_idle_buckets: int = 1000  # Prune idle buckets beyond this many

    def __post_init__(self) -> None:
        if self.default_timeout_ms is not None and self.default_timeout_ms <= 0:
            raise ValueError(f"default_timeout_ms must be > 0, got {self.default_timeout_ms}")
        if not self.major_parameters:
            raise ValueError("major_parameters must not be empty")
        if self.max_idle_buckets < 1:
            raise ValueError(f"max_idle_buckets must be >= 1, got {self.max_idle_buckets}")


class BucketStore:
    """Bucket schedulers keyed by bucket key, created on first use."""

    def __init__(self, factory: Callable[[str], BucketScheduler]) -> None:
        self._factory = factory
        self._buckets: dict[str, BucketScheduler] = {}

    def __len__(self) -> int:
        return len(self._buckets)

    def __iter__(self) -> Iterator[BucketScheduler]:
        return iter(list(self._buckets.values()))

    def get(self, key: str) -> BucketScheduler | None:
        return self._buckets.get(key)

    def get_or_create(self, key: str) -> BucketScheduler:
        bucket = self._buckets.get(key)
        if bucket is None:
            bucket = self._factory(key)
            self._buckets[key] = bucket
            logger.debug("Bucket created", extra={"route": key, "buckets": len(self._buckets)})
        return bucket

    def prune_idle(self, now_ms: int) -> int:
        """Drop idle buckets. Returns the number removed."""
        idle = [key for key, bucket in self._buckets.items() if bucket.is_idle(now_ms)]
        for key in idle:
            del self._buckets[key]
        return len(idle)

    def clear(self) -> None:
        self._buckets.clear()


class RequestDispatcher:
    """
    Rate-limit aware request scheduler shared by all resource wrappers.

    Owns the bucket store and the global lock for the lifetime of the client.
    Must be used from a single event loop.
    """

    def __init__(
        self,
        transport: Transport,
        base_url: str,
        config: DispatcherConfig | None = None,
        *,
        default_headers: Mapping[str, str] | None = None,
        auth_header: str | None = None,
        resolver: RouteKeyResolver | None = None,
        global_lock: GlobalLock | None = None,
        coordinator: RetryCoordinator | None = None,
        _time_fn: Callable[[], int] | None = None,
    ) -> None:
        """
        Initialize the dispatcher.

        Args:
            transport: Collaborator that performs the HTTP call.
            base_url: API base URL, e.g. "https://discord.com/api/v10".
            config: Dispatcher configuration.
            default_headers: Headers sent with every request (User-Agent etc.).
            auth_header: Authorization header value for authenticated routes.
            resolver: Route key resolver (default built from config.major_parameters).
            global_lock: Shared global lock (default: new lock).
            coordinator: Retry coordinator (default built from config.retry).
        """
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._config = config or DispatcherConfig()
        self._default_headers = dict(default_headers or {})
        self._auth_header = auth_header
        self._time_fn = _time_fn

        self._resolver = resolver or RouteKeyResolver(self._config.major_parameters)
        self._global_lock = global_lock or GlobalLock(_time_fn=_time_fn)
        self._coordinator = coordinator or RetryCoordinator(self._config.retry, self._global_lock)
        self.metrics = DispatcherMetrics()

        self._buckets = BucketStore(self._create_bucket)
        self._closed = False

    def _now_ms(self) -> int:
        """Get current time in milliseconds."""
        if self._time_fn is not None:
            return self._time_fn()
        return int(time.monotonic() * 1000)

    @property
    def config(self) -> DispatcherConfig:
        return self._config

    @property
    def global_lock(self) -> GlobalLock:
        return self._global_lock

    @property
    def resolver(self) -> RouteKeyResolver:
        return self._resolver

    @property
    def closed(self) -> bool:
        return self._closed

    def _create_bucket(self, key: str) -> BucketScheduler:
        return BucketScheduler(
            key,
            self._send,
            self._coordinator,
            self._global_lock,
            self.metrics,
            time_fn=self._time_fn,
        )

    def submit(
        self,
        descriptor: RouteDescriptor,
        options: RequestOptions | None = None,
    ) -> RequestHandle:
        """
        Submit a request for rate-limited dispatch.

        Must be called from within the running event loop.

        Args:
            descriptor: The request to send.
            options: Timeout and cancellation options.

        Returns:
            Awaitable handle that settles exactly once.

        Raises:
            RuntimeError: If the dispatcher is closed.
            TypeError: If the body is not JSON-serializable.
        """
        if self._closed:
            raise RuntimeError("Dispatcher is closed")

        loop = asyncio.get_running_loop()
        options = options or RequestOptions()
        payload = encode_request(descriptor)

        key = self._resolver.resolve(descriptor.method, descriptor.path)
        now_ms = self._now_ms()
        timeout_ms = options.timeout_ms if options.timeout_ms is not None else self._config.default_timeout_ms

        pending = PendingRequest(
            descriptor=descriptor,
            bucket_key=key,
            future=loop.create_future(),
            submitted_at_ms=now_ms,
            deadline_ms=now_ms + timeout_ms if timeout_ms is not None else None,
            payload=payload,
        )
        self.metrics.requests_submitted += 1
        handle = RequestHandle(pending, self._cancel)

        token = options.cancel_token
        if token is not None and token.cancelled:
            self._settle_cancelled(pending, "Cancellation token already cancelled")
            return handle

        if len(self._buckets) > self._config.max_idle_buckets:
            self.prune_idle_buckets()

        bucket = self._buckets.get_or_create(key)
        self.metrics.bucket_count = len(self._buckets)
        bucket.enqueue(pending)

        if timeout_ms is not None:
            pending._timer = loop.call_later(timeout_ms / 1000, self._on_deadline, pending)
        if token is not None:
            pending._unregister_token = token.register(lambda: self._cancel(pending))

        return handle

    async def request(
        self,
        descriptor: RouteDescriptor,
        options: RequestOptions | None = None,
    ) -> Any:
        """Submit and await the result."""
        return await self.submit(descriptor, options)

    def _cancel(self, pending: PendingRequest) -> bool:
        """Cancel a request if it is still queued."""
        if pending.settled:
            return False
        if pending.state != RequestState.QUEUED:
            logger.debug(
                "Cancel ignored, request in flight",
                extra={"request_id": pending.request_id, "state": pending.state.value},
            )
            return False
        bucket = self._buckets.get(pending.bucket_key)
        if bucket is None or not bucket.remove(pending):
            return False
        self._settle_cancelled(pending, "Request cancelled before dispatch")
        return True

    def _settle_cancelled(self, pending: PendingRequest, message: str) -> None:
        descriptor = pending.descriptor
        if pending.fail(
            RequestCancelled(message, method=descriptor.method, path=descriptor.path),
            RequestState.CANCELLED,
        ):
            self.metrics.requests_cancelled += 1
            logger.debug(
                "Request cancelled",
                extra={"request_id": pending.request_id, "route": pending.bucket_key},
            )

    def _on_deadline(self, pending: PendingRequest) -> None:
        """Deadline timer: time out the request if it has not left the queue."""
        pending._timer = None
        if pending.settled or pending.state != RequestState.QUEUED:
            return
        bucket = self._buckets.get(pending.bucket_key)
        if bucket is None or not bucket.remove(pending):
            return
        waited_ms = self._now_ms() - pending.submitted_at_ms
        descriptor = pending.descriptor
        if pending.fail(
            RequestTimeout(
                f"Request timed out after {waited_ms}ms in queue",
                waited_ms=waited_ms,
                method=descriptor.method,
                path=descriptor.path,
            ),
            RequestState.TIMED_OUT,
        ):
            self.metrics.requests_timed_out += 1
            logger.debug(
                "Request timed out in queue",
                extra={"request_id": pending.request_id, "route": pending.bucket_key, "waited_ms": waited_ms},
            )

    def build_url(self, descriptor: RouteDescriptor) -> str:
        url = f"{self._base_url}{descriptor.path}"
        if descriptor.query:
            params = {
                k: (str(v).lower() if isinstance(v, bool) else v)
                for k, v in descriptor.query.items()
                if v is not None
            }
            if params:
                url = f"{url}?{urlencode(params, doseq=True)}"
        return url

    def build_headers(self, descriptor: RouteDescriptor, payload: EncodedPayload) -> dict[str, str]:
        headers = dict(self._default_headers)
        if descriptor.authenticated and self._auth_header:
            headers["Authorization"] = self._auth_header
        if descriptor.reason:
            headers["X-Audit-Log-Reason"] = quote(descriptor.reason, safe=" ")
        if payload.content_type is not None:
            headers["Content-Type"] = payload.content_type
        return headers

    async def _send(self, pending: PendingRequest) -> TransportResponse:
        """Send one attempt of a pending request through the transport."""
        descriptor = pending.descriptor
        payload = pending.payload or EncodedPayload()
        return await self._transport.send(
            descriptor.method,
            self.build_url(descriptor),
            self.build_headers(descriptor, payload),
            payload.build_body(),
        )

    def prune_idle_buckets(self) -> int:
        """Drop buckets with no work and no pending reset. Returns count removed."""
        removed = self._buckets.prune_idle(self._now_ms())
        if removed:
            logger.debug("Pruned idle buckets", extra={"removed": removed, "buckets": len(self._buckets)})
        self.metrics.bucket_count = len(self._buckets)
        return removed

    def bucket_state(self, key: str) -> dict[str, Any] | None:
        """Status of one bucket by key (None if unknown)."""
        bucket = self._buckets.get(key)
        return bucket.get_status() if bucket is not None else None

    def get_status(self) -> dict[str, Any]:
        """Get current dispatcher status for observability."""
        self.metrics.bucket_count = len(self._buckets)
        return {
            "buckets": len(self._buckets),
            "queued": self.metrics.current_queued,
            "in_flight": self.metrics.current_in_flight,
            "global_lock": self._global_lock.get_status(),
            "closed": self._closed,
        }

    async def close(self) -> None:
        """Cancel queued requests, stop bucket workers and close the transport."""
        if self._closed:
            return
        self._closed = True
        for bucket in self._buckets:
            await bucket.close()
        self._buckets.clear()
        await self._transport.close()
        logger.info("Dispatcher closed")

"""
Request types shared by the dispatcher and the resource-method wrappers.

RouteDescriptor is plain data built by the wrappers; PendingRequest and
RequestHandle carry one submission through the dispatcher's state machine:

    PENDING -> QUEUED -> IN_FLIGHT -> SUCCEEDED
                                   -> RETRYING -> QUEUED
                                   -> FAILED
               QUEUED -> CANCELLED | TIMED_OUT
"""

from __future__ import annotations

import asyncio
import itertools
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import Callable, Generator, Mapping

    from snowtransfer.errors import SnowTransferError
    from snowtransfer.transport import EncodedPayload


@dataclass(frozen=True)
class Attachment:
    """A file uploaded alongside a request body (multipart)."""

    filename: str
    data: bytes
    content_type: str = "application/octet-stream"
    description: str | None = None


@dataclass(frozen=True)
class RouteDescriptor:
    """
    A request as built by a resource-method wrapper.

    Attributes:
        method: HTTP method (e.g., "GET").
        path: Resolved path relative to the API base (e.g., "/channels/1/messages").
        body: JSON-serializable payload, or None.
        attachments: Files to upload; switches the body to multipart.
        query: Query-string parameters.
        reason: Audit log reason (X-Audit-Log-Reason).
        authenticated: Whether to send the client's Authorization header.
    """

    method: str
    path: str
    body: Any = None
    attachments: tuple[Attachment, ...] = ()
    query: Mapping[str, Any] | None = None
    reason: str | None = None
    authenticated: bool = True

    def __post_init__(self) -> None:
        if not self.path.startswith("/"):
            raise ValueError(f"path must start with '/', got {self.path!r}")
        object.__setattr__(self, "method", self.method.upper())
        object.__setattr__(self, "attachments", tuple(self.attachments))


class CancellationToken:
    """
    Caller-side cancellation signal.

    One token may be shared by several requests; cancelling it cancels every
    one of them that is still queued.
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        if self._cancelled:
            return
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def register(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a cancel callback. Returns a function that unregisters it."""
        self._callbacks.append(callback)

        def unregister() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unregister


@dataclass(frozen=True)
class RequestOptions:
    """
    Per-request submission options.

    Attributes:
        timeout_ms: Deadline for leaving the queue (None = dispatcher default).
        cancel_token: Optional token that cancels the request while queued.
    """

    timeout_ms: int | None = None
    cancel_token: CancellationToken | None = None

    def __post_init__(self) -> None:
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be > 0, got {self.timeout_ms}")


class RequestState(str, Enum):
    """Lifecycle state of a submitted request."""

    PENDING = "PENDING"
    QUEUED = "QUEUED"
    IN_FLIGHT = "IN_FLIGHT"
    RETRYING = "RETRYING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"
    TIMED_OUT = "TIMED_OUT"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {
        RequestState.SUCCEEDED,
        RequestState.FAILED,
        RequestState.CANCELLED,
        RequestState.TIMED_OUT,
    }
)

_request_ids = itertools.count(1)


@dataclass(eq=False)
class PendingRequest:
    """
    One submission travelling through a bucket.

    Owned by the bucket queue it sits in; the future settles exactly once.
    """

    descriptor: RouteDescriptor
    bucket_key: str
    future: asyncio.Future[Any]
    submitted_at_ms: int
    deadline_ms: int | None = None
    payload: EncodedPayload | None = None
    state: RequestState = RequestState.PENDING
    retry_count: int = 0  # Retries scheduled, any cause
    ratelimit_attempt: int = 0  # 429 responses received
    backoff_attempt: int = 0  # 5xx / network failures received
    not_before_ms: int = 0
    request_id: int = field(default_factory=lambda: next(_request_ids))

    # Deadline timer and token unregister hook, cleared on settlement
    _timer: asyncio.TimerHandle | None = field(default=None, repr=False)
    _unregister_token: Callable[[], None] | None = field(default=None, repr=False)

    @property
    def settled(self) -> bool:
        return self.future.done()

    def succeed(self, value: Any) -> bool:
        """Settle with a value. Returns False if already settled."""
        if self.future.done():
            return False
        self.state = RequestState.SUCCEEDED
        self._cleanup()
        self.future.set_result(value)
        return True

    def fail(self, error: SnowTransferError, state: RequestState = RequestState.FAILED) -> bool:
        """Settle with an error. Returns False if already settled."""
        if self.future.done():
            return False
        self.state = state
        self._cleanup()
        self.future.set_exception(error)
        if state in (RequestState.CANCELLED, RequestState.TIMED_OUT):
            # Abandoned handles may never be awaited; mark the error retrieved
            self.future.exception()
        return True

    def _cleanup(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        if self._unregister_token is not None:
            self._unregister_token()
            self._unregister_token = None


class RequestHandle:
    """
    Single-resolution handle returned by submit().

    Await it for the parsed payload or a typed SnowTransferError. If the
    awaiting task is cancelled while the request is still queued, the
    request is cancelled too.
    """

    def __init__(self, pending: PendingRequest, canceller: Callable[[PendingRequest], bool]) -> None:
        self._pending = pending
        self._canceller = canceller

    @property
    def request_id(self) -> int:
        return self._pending.request_id

    @property
    def bucket_key(self) -> str:
        return self._pending.bucket_key

    @property
    def state(self) -> RequestState:
        return self._pending.state

    @property
    def retry_count(self) -> int:
        return self._pending.retry_count

    def done(self) -> bool:
        return self._pending.future.done()

    def cancel(self) -> bool:
        """
        Cancel the request.

        Returns:
            True if the request was still queued and is now cancelled. False if
            it is already in flight (it runs to completion) or settled.
        """
        return self._canceller(self._pending)

    def result(self) -> Any:
        """Return the value or raise the error of a settled request."""
        return self._pending.future.result()

    def exception(self) -> BaseException | None:
        return self._pending.future.exception()

    async def _wait(self) -> Any:
        try:
            return await asyncio.shield(self._pending.future)
        except asyncio.CancelledError:
            if not self._pending.future.done():
                self.cancel()
            raise

    def __await__(self) -> Generator[Any, None, Any]:
        return self._wait().__await__()


@dataclass
class DispatcherMetrics:
    """Counters and gauges for dispatcher observability."""

    # Counters
    requests_submitted: int = 0
    requests_dispatched: int = 0  # Sends, including retries
    requests_succeeded: int = 0
    requests_failed: int = 0
    requests_retried: int = 0
    requests_ratelimited: int = 0  # 429 responses received
    global_ratelimits: int = 0
    requests_cancelled: int = 0
    requests_timed_out: int = 0

    # Gauges
    current_queued: int = 0
    current_in_flight: int = 0
    bucket_count: int = 0

    # Queue wait accumulators
    total_queue_wait_ms: int = 0
    max_queue_wait_ms: int = 0

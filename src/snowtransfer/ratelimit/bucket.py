"""
Per-bucket state and scheduling.

Each BucketScheduler owns one BucketState and one FIFO queue, drained by a
single worker task:
- wait for the global lock, the bucket's reset window and the head's
  backoff gate
- optimistically decrement `remaining`, send, then overwrite the counters
  from the authoritative response headers
- hand the outcome to the retry coordinator; only after the request is
  settled or back at the head of the queue does the worker move on

One request is in flight per bucket at a time, and dispatch order equals
submission order.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import TYPE_CHECKING

from snowtransfer.errors import NetworkError, RequestCancelled, RequestTimeout, SnowTransferError
from snowtransfer.ratelimit.headers import RateLimitHeaders
from snowtransfer.ratelimit.retry import Fail, Retry, Succeed
from snowtransfer.types import RequestState

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from snowtransfer.ratelimit.global_lock import GlobalLock
    from snowtransfer.ratelimit.retry import RetryCoordinator
    from snowtransfer.transport import TransportResponse
    from snowtransfer.types import DispatcherMetrics, PendingRequest

logger = logging.getLogger(__name__)


@dataclass
class BucketState:
    """
    Rate-limit counters for one bucket.

    limit is None until the first response reveals it; until then the bucket
    behaves as limit=1. remaining never goes below 0 and reset_at_ms never
    moves backwards.
    """

    key: str
    limit: int | None = None
    remaining: int = 1
    reset_at_ms: int = 0
    bucket_id: str | None = None

    @property
    def effective_limit(self) -> int:
        return self.limit if self.limit is not None and self.limit > 0 else 1

    def is_exhausted(self, now_ms: int) -> bool:
        """True when the budget is spent and the window has not reset yet."""
        return self.remaining <= 0 and now_ms < self.reset_at_ms

    def roll_window(self, now_ms: int) -> None:
        """Restore the budget once the reset time has passed."""
        if self.remaining <= 0 and now_ms >= self.reset_at_ms:
            self.remaining = self.effective_limit

    def consume(self) -> None:
        """Optimistic decrement before a send."""
        self.remaining = max(0, self.remaining - 1)

    def apply(self, headers: RateLimitHeaders, received_at_ms: int) -> None:
        """Overwrite counters with authoritative header values."""
        if headers.limit is not None:
            self.limit = headers.limit
        if headers.remaining is not None:
            self.remaining = max(0, headers.remaining)
        if headers.reset_after_ms is not None:
            self.reset_at_ms = max(self.reset_at_ms, received_at_ms + headers.reset_after_ms)
        if headers.bucket_id is not None:
            self.bucket_id = headers.bucket_id

    def hold_until(self, reset_at_ms: int) -> None:
        """Block the bucket until reset_at_ms (local throttle)."""
        self.remaining = 0
        self.reset_at_ms = max(self.reset_at_ms, reset_at_ms)


class BucketScheduler:
    """
    FIFO scheduler for one rate-limit bucket.

    The worker task is started on enqueue and exits when the queue drains.
    Only this scheduler writes its BucketState.
    """

    def __init__(
        self,
        key: str,
        send: Callable[[PendingRequest], Awaitable[TransportResponse]],
        coordinator: RetryCoordinator,
        global_lock: GlobalLock,
        metrics: DispatcherMetrics,
        *,
        time_fn: Callable[[], int] | None = None,
    ) -> None:
        self.key = key
        self.state = BucketState(key=key)
        self._send = send
        self._coordinator = coordinator
        self._global_lock = global_lock
        self._metrics = metrics
        self._time_fn = time_fn

        self._queue: deque[PendingRequest] = deque()
        self._in_flight: PendingRequest | None = None
        self._worker: asyncio.Task[None] | None = None
        self._wakeup = asyncio.Event()
        self.last_used_ms = self._now_ms()

    def _now_ms(self) -> int:
        """Get current time in milliseconds."""
        if self._time_fn is not None:
            return self._time_fn()
        return int(time.monotonic() * 1000)

    @property
    def queue_depth(self) -> int:
        return len(self._queue)

    @property
    def in_flight(self) -> PendingRequest | None:
        return self._in_flight

    @property
    def is_active(self) -> bool:
        return self._worker is not None and not self._worker.done()

    def is_idle(self, now_ms: int) -> bool:
        """No queued or in-flight work and no pending reset window."""
        return (
            not self._queue
            and self._in_flight is None
            and not self.is_active
            and not self.state.is_exhausted(now_ms)
        )

    def enqueue(self, pending: PendingRequest) -> None:
        """Append to the tail; start the worker if the bucket is idle."""
        pending.state = RequestState.QUEUED
        self._queue.append(pending)
        self._metrics.current_queued += 1
        self.last_used_ms = self._now_ms()
        self._ensure_worker()

    def remove(self, pending: PendingRequest) -> bool:
        """
        Remove a queued request (cancellation or timeout).

        Never touches the bucket counters: the request consumed no budget.

        Returns:
            True if the request was queued here and has been removed.
        """
        try:
            self._queue.remove(pending)
        except ValueError:
            return False
        self._metrics.current_queued -= 1
        # The worker may be sleeping on this request's backoff gate
        self._wakeup.set()
        return True

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._run(), name=f"snowtransfer-bucket:{self.key}"
            )

    async def _run(self) -> None:
        while self._queue:
            await self._wait_for_turn()
            if not self._queue:
                break
            pending = self._queue.popleft()
            self._metrics.current_queued -= 1
            await self._dispatch(pending)

    async def _sleep(self, delay_ms: int) -> None:
        """Sleep, waking early if the queue head is removed."""
        self._wakeup.clear()
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._wakeup.wait(), timeout=delay_ms / 1000)

    async def _wait_for_turn(self) -> None:
        """
        Suspend until the head of the queue may be sent.

        Conditions are re-evaluated after every suspension: the global lock may
        have been extended and the head may have changed meanwhile.
        """
        while self._queue:
            if self._global_lock.is_locked():
                await self._global_lock.wait()
                continue

            now_ms = self._now_ms()
            wait_ms = 0
            if self.state.is_exhausted(now_ms):
                wait_ms = self.state.reset_at_ms - now_ms
            wait_ms = max(wait_ms, self._queue[0].not_before_ms - now_ms)
            if wait_ms <= 0:
                return

            logger.debug(
                "Bucket waiting",
                extra={"route": self.key, "wait_ms": wait_ms, "queued": len(self._queue)},
            )
            await self._sleep(wait_ms)

    async def _dispatch(self, pending: PendingRequest) -> None:
        state = self.state
        now_ms = self._now_ms()

        state.roll_window(now_ms)
        state.consume()

        if pending.retry_count == 0:
            waited_ms = max(0, now_ms - pending.submitted_at_ms)
            self._metrics.total_queue_wait_ms += waited_ms
            self._metrics.max_queue_wait_ms = max(self._metrics.max_queue_wait_ms, waited_ms)

        pending.state = RequestState.IN_FLIGHT
        self._in_flight = pending
        self._metrics.current_in_flight += 1
        self._metrics.requests_dispatched += 1
        logger.debug(
            "Dispatching request",
            extra={
                "request_id": pending.request_id,
                "method": pending.descriptor.method,
                "route": self.key,
                "remaining": state.remaining,
                "attempt": pending.retry_count,
            },
        )

        outcome: TransportResponse | NetworkError
        try:
            outcome = await self._send(pending)
        except NetworkError as e:
            outcome = e
        except asyncio.CancelledError:
            if pending.fail(
                RequestCancelled(
                    "Dispatcher closed while request was in flight",
                    method=pending.descriptor.method,
                    path=pending.descriptor.path,
                ),
                RequestState.CANCELLED,
            ):
                self._metrics.requests_cancelled += 1
            raise
        except Exception as e:
            # Settle the caller instead of killing the worker
            logger.exception(
                "Unexpected error sending request",
                extra={"request_id": pending.request_id, "route": self.key},
            )
            self._settle_failure(
                pending,
                SnowTransferError(
                    f"Unexpected error sending request: {e}",
                    method=pending.descriptor.method,
                    path=pending.descriptor.path,
                ),
            )
            return
        finally:
            self._in_flight = None
            self._metrics.current_in_flight -= 1

        try:
            self._handle_outcome(pending, outcome)
        except Exception as e:
            # Settle the caller instead of killing the worker
            logger.exception(
                "Unexpected error handling response",
                extra={"request_id": pending.request_id, "route": self.key},
            )
            self._settle_failure(
                pending,
                SnowTransferError(
                    f"Unexpected error handling response: {e}",
                    method=pending.descriptor.method,
                    path=pending.descriptor.path,
                ),
            )

    def _handle_outcome(self, pending: PendingRequest, outcome: TransportResponse | NetworkError) -> None:
        """Apply response headers, then act on the retry decision."""
        received_at_ms = self._now_ms()
        if not isinstance(outcome, NetworkError):
            self.state.apply(RateLimitHeaders.from_headers(outcome.headers), received_at_ms)
            if outcome.status == 429:
                self._metrics.requests_ratelimited += 1

        decision = self._coordinator.decide(pending, outcome)

        if isinstance(decision, Succeed):
            if pending.succeed(decision.value):
                self._metrics.requests_succeeded += 1
        elif isinstance(decision, Fail):
            self._settle_failure(pending, decision.error)
        elif isinstance(decision, Retry):
            self._requeue(pending, decision, received_at_ms)

    def _settle_failure(self, pending: PendingRequest, error: SnowTransferError) -> None:
        if pending.fail(error):
            self._metrics.requests_failed += 1

    def _requeue(self, pending: PendingRequest, decision: Retry, now_ms: int) -> None:
        """Put a retried request back at the head so it keeps its place in line."""
        pending.state = RequestState.RETRYING

        if decision.throttled:
            if decision.is_global:
                self._metrics.global_ratelimits += 1
            else:
                self.state.hold_until(now_ms + decision.after_ms)
        pending.not_before_ms = now_ms + decision.after_ms

        if pending.deadline_ms is not None and now_ms >= pending.deadline_ms:
            if pending.fail(
                RequestTimeout(
                    "Deadline passed before retry could be queued",
                    waited_ms=now_ms - pending.submitted_at_ms,
                    method=pending.descriptor.method,
                    path=pending.descriptor.path,
                ),
                RequestState.TIMED_OUT,
            ):
                self._metrics.requests_timed_out += 1
            return

        self._metrics.requests_retried += 1
        pending.state = RequestState.QUEUED
        self._queue.appendleft(pending)
        self._metrics.current_queued += 1

    async def close(self) -> None:
        """Stop the worker and cancel everything still queued."""
        while self._queue:
            pending = self._queue.popleft()
            self._metrics.current_queued -= 1
            if pending.fail(
                RequestCancelled(
                    "Dispatcher closed",
                    method=pending.descriptor.method,
                    path=pending.descriptor.path,
                ),
                RequestState.CANCELLED,
            ):
                self._metrics.requests_cancelled += 1
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
        self._worker = None

    def get_status(self) -> dict[str, int | str | bool | None]:
        """Get current bucket status for observability."""
        return {
            "key": self.key,
            "limit": self.state.limit,
            "remaining": self.state.remaining,
            "reset_in_ms": max(0, self.state.reset_at_ms - self._now_ms()),
            "bucket_id": self.state.bucket_id,
            "queued": len(self._queue),
            "in_flight": self._in_flight is not None,
        }

"""
Global rate-limit gate shared by every bucket.

A throttling response flagged global freezes dispatch across all buckets for
the advertised wait duration, not just the bucket that received it.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Callable

logger = logging.getLogger(__name__)


@dataclass
class GlobalLock:
    """
    Cross-bucket lock with an expiry time.

    Schedulers only read it (is_locked / wait); the request holding its
    bucket's turn is the single writer via lock_for().
    """

    _unlock_at_ms: int = field(default=0)
    lock_count: int = field(default=0)

    # Optional time provider for deterministic testing
    _time_fn: Callable[[], int] | None = field(default=None)

    def _now_ms(self) -> int:
        """Get current time in milliseconds."""
        if self._time_fn is not None:
            return self._time_fn()
        return int(time.monotonic() * 1000)

    @property
    def unlock_at_ms(self) -> int:
        return self._unlock_at_ms

    def is_locked(self) -> bool:
        return self._now_ms() < self._unlock_at_ms

    def remaining_ms(self) -> int:
        """Milliseconds until the lock clears (0 if unlocked)."""
        return max(0, self._unlock_at_ms - self._now_ms())

    def lock_for(self, duration_ms: int) -> None:
        """
        Lock every bucket for duration_ms.

        Overlapping global throttles extend the lock; a shorter one never
        shortens it.
        """
        if duration_ms <= 0:
            return
        unlock_at = self._now_ms() + duration_ms
        if unlock_at > self._unlock_at_ms:
            self._unlock_at_ms = unlock_at
            self.lock_count += 1
            logger.warning(
                "Global rate limit engaged",
                extra={"duration_ms": duration_ms, "lock_count": self.lock_count},
            )

    async def wait(self) -> int:
        """
        Suspend until the lock clears.

        Re-checks after each sleep since another global throttle may have
        extended the lock meanwhile.

        Returns:
            Total milliseconds spent waiting.
        """
        waited_ms = 0
        while True:
            remaining_ms = self.remaining_ms()
            if remaining_ms <= 0:
                return waited_ms
            await asyncio.sleep(remaining_ms / 1000)
            waited_ms += remaining_ms

    def reset(self) -> None:
        """Clear the lock."""
        self._unlock_at_ms = 0

    def get_status(self) -> dict[str, int | bool]:
        """Get current lock status for observability."""
        return {
            "locked": self.is_locked(),
            "remaining_ms": self.remaining_ms(),
            "lock_count": self.lock_count,
        }

"""Sliding-window rate limiter for the Riot API personal key budget."""

import asyncio
import time
from collections import deque
from typing import Callable, Deque, Dict

import structlog

logger = structlog.get_logger(__name__)


class SlidingWindow:
    """Admission timestamps seen inside one rolling window."""

    def __init__(self, limit: int, seconds: float):
        self.limit = limit
        self.seconds = seconds
        self.timestamps: Deque[float] = deque()

    def evict(self, now: float) -> None:
        while self.timestamps and now - self.timestamps[0] >= self.seconds:
            self.timestamps.popleft()

    def has_room(self) -> bool:
        return len(self.timestamps) < self.limit

    def wait_time(self, now: float) -> float:
        """Seconds until the oldest admission leaves the window."""
        if not self.timestamps:
            return 0.0
        return max(0.0, self.seconds - (now - self.timestamps[0]))


class DualWindowRateLimiter:
    """
    Rate limiter enforcing two sliding windows at once.

    Riot development keys allow 20 requests per second and 100 requests per
    two minutes. Waiters are admitted one at a time in arrival order because
    the whole wait happens while holding the lock.
    """

    def __init__(
        self,
        short_limit: int = 20,
        short_seconds: float = 1.0,
        long_limit: int = 100,
        long_seconds: float = 120.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.short_window = SlidingWindow(short_limit, short_seconds)
        self.long_window = SlidingWindow(long_limit, long_seconds)
        self._clock = clock
        self.lock = asyncio.Lock()

    async def acquire(self) -> float:
        """
        Wait until both windows have room, then record an admission.

        Returns:
            The clock value at which the call was admitted
        """
        async with self.lock:
            while True:
                now = self._clock()
                self.short_window.evict(now)
                self.long_window.evict(now)

                if self.short_window.has_room() and self.long_window.has_room():
                    self.short_window.timestamps.append(now)
                    self.long_window.timestamps.append(now)
                    return now

                wait = 0.0
                if not self.short_window.has_room():
                    wait = max(wait, self.short_window.wait_time(now))
                if not self.long_window.has_room():
                    wait = max(wait, self.long_window.wait_time(now))

                if wait >= 1.0:
                    logger.info("Rate limit budget exhausted, waiting", wait_time=round(wait, 2))
                await asyncio.sleep(max(wait, 0.001))

    def get_status(self) -> Dict[str, int]:
        """Current usage of both windows."""
        now = self._clock()
        self.short_window.evict(now)
        self.long_window.evict(now)
        return {
            "short_used": len(self.short_window.timestamps),
            "short_limit": self.short_window.limit,
            "long_used": len(self.long_window.timestamps),
            "long_limit": self.long_window.limit,
        }

    async def reset(self) -> None:
        async with self.lock:
            self.short_window.timestamps.clear()
            self.long_window.timestamps.clear()

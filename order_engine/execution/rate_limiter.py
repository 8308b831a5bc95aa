"""
Sliding-window admission limiter for order dispatch.

Caps how many order processing attempts may start within any rolling window.
Retries count as starts.
"""

import asyncio
import time
from collections import deque
from typing import Callable, Deque


class AdmissionRateLimiter:
    """Allows at most ``max_starts`` acquisitions per rolling ``window_seconds``."""

    def __init__(
        self,
        max_starts: int = 100,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_starts < 1:
            raise ValueError("max_starts must be at least 1")
        if window_seconds <= 0:
            raise ValueError("window_seconds must be positive")

        self.max_starts = max_starts
        self.window_seconds = window_seconds
        self._clock = clock
        self._starts: Deque[float] = deque()
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Wait until a start is permitted, then record it."""
        async with self._lock:
            now = self._clock()
            self._cleanup(now)

            while len(self._starts) >= self.max_starts:
                sleep_time = self._starts[0] + self.window_seconds - now
                if sleep_time > 0:
                    await asyncio.sleep(sleep_time)
                now = self._clock()
                self._cleanup(now)

            self._starts.append(now)

    def try_acquire(self) -> bool:
        """Record a start without waiting; False if the window is full."""
        now = self._clock()
        self._cleanup(now)
        if len(self._starts) >= self.max_starts:
            return False
        self._starts.append(now)
        return True

    def time_until_available(self) -> float:
        now = self._clock()
        self._cleanup(now)
        if len(self._starts) < self.max_starts:
            return 0.0
        return max(0.0, self._starts[0] + self.window_seconds - now)

    def _cleanup(self, now: float) -> None:
        cutoff = now - self.window_seconds
        while self._starts and self._starts[0] <= cutoff:
            self._starts.popleft()

    @property
    def current_usage(self) -> int:
        """Starts recorded within the current window."""
        self._cleanup(self._clock())
        return len(self._starts)

    @property
    def available(self) -> int:
        return self.max_starts - self.current_usage

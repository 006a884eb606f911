from __future__ import annotations

import asyncio
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Callable


@dataclass
class RateLimiter:
    """Async sliding-window rate limiter.

    Admits at most max_requests calls within any trailing window of
    window_seconds. Timestamps are pruned lazily on each check.
    """

    max_requests: int
    window_seconds: float
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    _calls: deque[float] = field(default_factory=deque, init=False, repr=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    @classmethod
    def per_second(cls, requests_per_second: int, **kwargs) -> "RateLimiter":
        return cls(max_requests=requests_per_second, window_seconds=1.0, **kwargs)

    def _prune(self, now: float) -> None:
        while self._calls and now - self._calls[0] >= self.window_seconds:
            self._calls.popleft()

    async def try_acquire(self) -> bool:
        if self.max_requests <= 0:
            return True

        async with self._lock:
            now = self.clock()
            self._prune(now)
            if len(self._calls) < self.max_requests:
                self._calls.append(now)
                return True
            return False

    async def acquire(self) -> None:
        if self.max_requests <= 0:
            return

        while True:
            async with self._lock:
                now = self.clock()
                self._prune(now)

                if len(self._calls) < self.max_requests:
                    self._calls.append(now)
                    return

                wait_for = self.window_seconds - (now - self._calls[0])

            # Sleep outside the lock so try_acquire/current_count stay responsive.
            await asyncio.sleep(max(wait_for, 0.001))

    async def current_count(self) -> int:
        async with self._lock:
            now = self.clock()
            return sum(1 for t in self._calls if now - t < self.window_seconds)

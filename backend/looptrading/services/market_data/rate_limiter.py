import asyncio
import time
from typing import Awaitable, Callable, Optional


class RateLimiter:
    """
    Enforces a minimum gap between provider dispatches.

    Waiters are released one at a time in arrival order (asyncio.Lock is
    FIFO), each at least ``min_delay`` seconds after the previous one.
    """

    def __init__(
        self,
        min_delay: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.min_delay = min_delay
        self._clock = clock
        self._sleep = sleep
        self._lock: Optional[asyncio.Lock] = None
        self._next_time = 0.0

    async def acquire(self) -> None:
        if self.min_delay <= 0:
            return
        if self._lock is None:
            self._lock = asyncio.Lock()

        async with self._lock:
            now = self._clock()
            if now < self._next_time:
                await self._sleep(self._next_time - now)
            self._next_time = self._clock() + self.min_delay

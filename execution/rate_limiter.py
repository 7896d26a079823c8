import time
import asyncio
from typing import Awaitable, Callable, Dict, Optional

PROCESS_WIDE = "*"

class RateLimiter:
    def __init__(
        self,
        interval_seconds: float,
        per_host: bool = False,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.interval = interval_seconds
        self.per_host = per_host
        self._clock = clock
        self._sleep = sleep
        # One shared clock unless scoped per host
        self._last_dispatch: Dict[str, float] = {}
        self._lock = asyncio.Lock()

    async def acquire(self, host: Optional[str] = None) -> None:
        """Block until `interval` has passed since the previous acquire returned"""
        key = host if (self.per_host and host) else PROCESS_WIDE

        # asyncio.Lock wakes waiters in arrival order
        async with self._lock:
            last = self._last_dispatch.get(key)
            if last is not None:
                elapsed = self._clock() - last
                if elapsed < self.interval:
                    await self._sleep(self.interval - elapsed)

            self._last_dispatch[key] = self._clock()

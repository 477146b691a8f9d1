"""Token-bucket pacing for calls against upstream data providers."""

import asyncio
import logging
import time
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


class RateLimiter:
    """Token bucket that refills one token every `min_interval` seconds.

    With the default burst of 1 the first acquisition is immediate and every
    later one waits until `min_interval` has passed since the previous token.
    The clock and sleep are injectable so tests never wait on the wall clock.
    """

    def __init__(
        self,
        min_interval: float,
        burst: int = 1,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        if burst < 1:
            raise ValueError("burst must be at least 1")
        self.min_interval = max(0.0, float(min_interval))
        self.burst = burst
        self._clock = clock
        self._sleep = sleep
        self._tokens = float(burst)
        self._updated = clock()
        self.acquisitions = 0
        self.total_wait = 0.0

    def _refill(self, now: float) -> None:
        if now > self._updated:
            self._tokens = min(self.burst, self._tokens + (now - self._updated) / self.min_interval)
            self._updated = now

    async def acquire(self) -> float:
        """Take one token, sleeping until it is available. Returns the seconds waited."""
        self.acquisitions += 1
        if self.min_interval == 0:
            return 0.0

        now = self._clock()
        self._refill(now)
        if self._tokens >= 1:
            self._tokens -= 1
            return 0.0

        # Waiters queue behind any token already promised to an earlier caller
        ready_at = max(now, self._updated) + (1 - self._tokens) * self.min_interval
        wait = ready_at - now
        self._tokens = 0.0
        self._updated = ready_at
        logger.debug(f"Rate limit reached, waiting {wait:.3f}s")
        self.total_wait += wait
        await self._sleep(wait)
        return wait

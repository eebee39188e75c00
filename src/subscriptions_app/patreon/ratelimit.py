"""Token bucket limiter for outbound Patreon API requests."""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Awaitable, Callable

from .errors import SyncCancelledError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Allow ``requests_per_minute`` requests per 60 seconds with an equal burst.

    Waiters are served one at a time under an :class:`asyncio.Lock`, so a
    single limiter can be shared by every fetch in the process. ``clock`` and
    ``sleep`` are injectable for tests.
    """

    def __init__(
        self,
        requests_per_minute: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")

        self.capacity = float(requests_per_minute)
        self.rate = requests_per_minute / 60.0  # tokens per second
        self._clock = clock
        self._sleep = sleep
        self._tokens = self.capacity
        self._updated = clock()
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        elapsed = max(0.0, now - self._updated)
        self._tokens = min(self.capacity, self._tokens + elapsed * self.rate)
        self._updated = now

    @property
    def available(self) -> float:
        self._refill()
        return self._tokens

    async def _acquire(self) -> None:
        async with self._lock:
            self._refill()
            if self._tokens < 1:
                delay = (1 - self._tokens) / self.rate
                logger.debug("Rate limit reached; waiting %.2fs for a slot", delay)
                await self._sleep(delay)
                self._refill()
            self._tokens -= 1

    async def acquire(self, timeout: float | None = None) -> None:
        """
        Wait for one request slot.

        :param timeout: Optional bound in seconds on the wait.
        :raises SyncCancelledError: If ``timeout`` fires before a slot frees up.
        """
        if timeout is None:
            await self._acquire()
            return

        try:
            await asyncio.wait_for(self._acquire(), timeout)
        except asyncio.TimeoutError as exc:
            raise SyncCancelledError("rate limiter wait", timeout) from exc

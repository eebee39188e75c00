import asyncio

import pytest

from subscriptions_app.patreon.errors import SyncCancelledError
from subscriptions_app.patreon.ratelimit import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps = []

    def __call__(self):
        return self.now

    async def sleep(self, delay):
        self.sleeps.append(delay)
        self.now += delay


def test_full_burst_then_waits_for_refill():
    clock = FakeClock()
    limiter = RateLimiter(60, clock=clock, sleep=clock.sleep)

    async def _run():
        for _ in range(60):
            await limiter.acquire()
        assert clock.sleeps == []
        await limiter.acquire()

    asyncio.run(_run())

    assert clock.sleeps == [pytest.approx(1.0)]


def test_tokens_refill_with_elapsed_time():
    clock = FakeClock()
    limiter = RateLimiter(120, clock=clock, sleep=clock.sleep)

    async def _drain():
        for _ in range(120):
            await limiter.acquire()

    asyncio.run(_drain())
    assert limiter.available == pytest.approx(0.0)

    clock.now += 15
    assert limiter.available == pytest.approx(30.0)

    clock.now += 600
    assert limiter.available == pytest.approx(120.0)


def test_acquire_timeout_raises_sync_cancelled():
    async def never(_delay):
        await asyncio.Event().wait()

    async def _run():
        limiter = RateLimiter(1, clock=lambda: 0.0, sleep=never)
        await limiter.acquire()
        with pytest.raises(SyncCancelledError) as excinfo:
            await limiter.acquire(timeout=0.01)
        assert excinfo.value.phase == "rate limiter wait"

    asyncio.run(_run())


def test_requests_per_minute_must_be_positive():
    with pytest.raises(ValueError):
        RateLimiter(0)

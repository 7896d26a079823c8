"""Test the request rate limiter."""
import pytest
from execution.rate_limiter import RateLimiter


class FakeClock:
    """Monotonic clock advanced only by the fake sleep."""

    def __init__(self):
        self.now = 100.0
        self.sleeps = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(round(seconds, 6))
        self.now += seconds


@pytest.mark.asyncio
async def test_first_acquire_does_not_wait():
    """Test that the first request is dispatched at once."""
    clock = FakeClock()
    limiter = RateLimiter(0.3, clock=clock, sleep=clock.sleep)

    await limiter.acquire()

    assert clock.sleeps == []


@pytest.mark.asyncio
async def test_back_to_back_acquires_are_spaced():
    """Test that consecutive acquires wait out the interval."""
    clock = FakeClock()
    limiter = RateLimiter(0.3, clock=clock, sleep=clock.sleep)

    for _ in range(3):
        await limiter.acquire()

    assert clock.sleeps == [0.3, 0.3]


@pytest.mark.asyncio
async def test_elapsed_time_counts_toward_interval():
    """Test that only the remaining part of the interval is waited."""
    clock = FakeClock()
    limiter = RateLimiter(1.0, clock=clock, sleep=clock.sleep)

    await limiter.acquire()
    clock.now += 0.75
    await limiter.acquire()
    clock.now += 5
    await limiter.acquire()

    assert clock.sleeps == [0.25]


@pytest.mark.asyncio
async def test_process_wide_scope_shares_one_clock():
    """Test that different hosts share the limiter by default."""
    clock = FakeClock()
    limiter = RateLimiter(0.5, clock=clock, sleep=clock.sleep)

    await limiter.acquire("a.example.org")
    await limiter.acquire("b.example.org")

    assert clock.sleeps == [0.5]


@pytest.mark.asyncio
async def test_per_host_scope():
    """Test that per-host limiters only space requests to the same host."""
    clock = FakeClock()
    limiter = RateLimiter(0.5, per_host=True, clock=clock, sleep=clock.sleep)

    await limiter.acquire("a.example.org")
    await limiter.acquire("b.example.org")
    await limiter.acquire("a.example.org")

    assert clock.sleeps == [0.5]


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

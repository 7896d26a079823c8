"""Test the retrying fetcher against a mocked transport."""
import httpx
import pytest

from execution.errors import (
    FetchFailure,
    HttpStatusError,
    NotFoundError,
    RetriesExhaustedError,
)
from execution.rate_limiter import RateLimiter
from execution.retry_handler import RetryingFetcher

URL = "https://texts.example.org/meditations/book1.html"


class CountingLimiter(RateLimiter):
    def __init__(self):
        super().__init__(0)
        self.acquired = 0

    async def acquire(self, host=None):
        self.acquired += 1
        await super().acquire(host)


def scripted_transport(responses):
    """Transport replaying status codes (or exceptions) in order."""
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        step = responses[len(calls)]
        calls.append(request)
        if isinstance(step, Exception):
            raise step
        return httpx.Response(step, text=f"body {len(calls)}")

    return httpx.MockTransport(handler), calls


def make_fetcher(responses, max_retries=5, base_delay=2.0):
    transport, calls = scripted_transport(responses)
    limiter = CountingLimiter()
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)

    fetcher = RetryingFetcher(
        limiter,
        max_retries=max_retries,
        base_delay=base_delay,
        client=httpx.AsyncClient(transport=transport),
        sleep=fake_sleep
    )
    return fetcher, calls, limiter, sleeps


@pytest.mark.asyncio
async def test_server_errors_retried_until_success():
    """Test 503, 503, 200 succeeds after exactly three gated requests."""
    fetcher, calls, limiter, sleeps = make_fetcher([503, 503, 200])

    result = await fetcher.fetch(URL)

    assert result.status_code == 200
    assert result.text == "body 3"
    assert len(calls) == 3
    assert limiter.acquired == 3
    assert fetcher.request_count == 3
    assert sleeps == [2.0, 4.0]


@pytest.mark.asyncio
async def test_not_found_is_never_retried():
    """Test that a 404 fails immediately after one request."""
    fetcher, calls, limiter, sleeps = make_fetcher([404, 200])

    with pytest.raises(NotFoundError) as excinfo:
        await fetcher.fetch(URL)

    assert excinfo.value.kind == FetchFailure.NOT_FOUND
    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_rate_limited_backs_off_one_step_longer():
    """Test that a 429 waits base * 2^(attempt+1)."""
    fetcher, calls, limiter, sleeps = make_fetcher([429, 429, 200], base_delay=1.0)

    result = await fetcher.fetch(URL)

    assert result.status_code == 200
    assert sleeps == [2.0, 4.0]


@pytest.mark.asyncio
async def test_timeout_is_retried():
    """Test that a transport timeout counts as a retryable failure."""
    request = httpx.Request("GET", URL)
    fetcher, calls, limiter, sleeps = make_fetcher(
        [httpx.ReadTimeout("timed out", request=request), 200]
    )

    text = await fetcher.fetch_text(URL)

    assert text == "body 2"
    assert len(calls) == 2
    assert sleeps == [2.0]


@pytest.mark.asyncio
async def test_retries_exhausted():
    """Test that persistent 5xx ends in RetriesExhaustedError."""
    fetcher, calls, limiter, sleeps = make_fetcher([500, 502, 503], max_retries=3)

    with pytest.raises(RetriesExhaustedError) as excinfo:
        await fetcher.fetch(URL)

    assert len(calls) == 3
    assert excinfo.value.attempts == 3
    assert excinfo.value.kind == FetchFailure.SERVER_ERROR
    assert sleeps == [2.0, 4.0]


@pytest.mark.asyncio
async def test_other_status_is_terminal():
    """Test that a non-retryable status fails at once."""
    fetcher, calls, limiter, sleeps = make_fetcher([403])

    with pytest.raises(HttpStatusError) as excinfo:
        await fetcher.fetch(URL)

    assert excinfo.value.status_code == 403
    assert len(calls) == 1


@pytest.mark.asyncio
async def test_fetch_json():
    """Test JSON decoding helper."""
    transport = httpx.MockTransport(lambda request: httpx.Response(200, json={"verses": [1, 2]}))
    async with RetryingFetcher(CountingLimiter(), client=httpx.AsyncClient(transport=transport)) as fetcher:
        data = await fetcher.fetch_json(URL)

    assert data == {"verses": [1, 2]}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])

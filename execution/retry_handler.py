import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel
from tenacity import AsyncRetrying, RetryCallState, RetryError, retry_if_exception_type, stop_after_attempt
from tenacity.wait import wait_base

from utils.logger import setup_logger
import config
from .errors import (
    HttpStatusError,
    NotFoundError,
    RateLimitedError,
    RetriesExhaustedError,
    ServerError,
    TimeoutFetchError,
    TransientFetchError,
    TransportFetchError,
)
from .rate_limiter import RateLimiter

logger = setup_logger(__name__)


class FetchResult(BaseModel):
    url: str
    status_code: int
    text: str
    byte_length: int


class wait_failure_backoff(wait_base):
    """base * 2^attempt, one extra doubling after a 429."""

    def __init__(self, base_delay: float):
        self.base_delay = base_delay

    def __call__(self, retry_state: RetryCallState) -> float:
        exponent = retry_state.attempt_number - 1
        if retry_state.outcome is not None and isinstance(retry_state.outcome.exception(), RateLimitedError):
            exponent += 1
        return self.base_delay * (2 ** exponent)


class RetryingFetcher:
    def __init__(
        self,
        rate_limiter: RateLimiter,
        max_retries: int = config.FETCH_MAX_RETRIES,
        base_delay: float = config.FETCH_BASE_DELAY_SECONDS,
        timeout: float = config.FETCH_TIMEOUT_SECONDS,
        client: Optional[httpx.AsyncClient] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
    ):
        self.rate_limiter = rate_limiter
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.timeout = timeout
        self._sleep = sleep
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient(
            timeout=timeout,
            follow_redirects=True,
            headers={"User-Agent": config.USER_AGENT}
        )
        self.request_count = 0

    async def __aenter__(self) -> "RetryingFetcher":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    async def fetch(self, url: str) -> FetchResult:
        """Fetch with rate limiting and bounded retries.

        404 raises NotFoundError at once. Timeouts, transport errors, 429 and
        5xx are retried with exponential backoff; once the attempts run out
        RetriesExhaustedError is raised. Other statuses raise HttpStatusError.
        """
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_retries),
            wait=wait_failure_backoff(self.base_delay),
            retry=retry_if_exception_type(TransientFetchError),
            before_sleep=self._log_retry,
            sleep=self._sleep
        )

        result = None
        try:
            async for attempt in retrying:
                with attempt:
                    result = await self._attempt(url)
        except RetryError as e:
            last_error = e.last_attempt.exception()
            logger.error(f"[Fetch] Giving up on {url} after {self.max_retries} attempts")
            raise RetriesExhaustedError(url, self.max_retries, last_error) from last_error

        return result

    async def fetch_text(self, url: str) -> str:
        return (await self.fetch(url)).text

    async def fetch_json(self, url: str) -> Any:
        return json.loads(await self.fetch_text(url))

    async def _attempt(self, url: str) -> FetchResult:
        await self.rate_limiter.acquire(httpx.URL(url).host)
        self.request_count += 1

        try:
            response = await self.client.get(url, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise TimeoutFetchError(url, f"Timeout after {self.timeout}s: {url}") from e
        except httpx.TransportError as e:
            raise TransportFetchError(url, f"Transport error ({e.__class__.__name__}): {url}") from e

        status = response.status_code
        if 200 <= status < 300:
            return FetchResult(
                url=url,
                status_code=status,
                text=response.text,
                byte_length=len(response.content)
            )
        if status == 404:
            raise NotFoundError(url)
        if status == 429:
            raise RateLimitedError(url)
        if status >= 500:
            raise ServerError(url, status)
        raise HttpStatusError(url, status)

    def _log_retry(self, retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception() if retry_state.outcome else None
        wait = retry_state.next_action.sleep if retry_state.next_action else 0
        logger.warning(
            f"[Fetch] {error} - retrying in {wait:.1f}s "
            f"(attempt {retry_state.attempt_number}/{self.max_retries})"
        )

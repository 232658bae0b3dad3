"""Shared HTTP plumbing for reputation APIs."""

import asyncio
import time
from typing import Any

import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

logger = structlog.get_logger(__name__)

TRANSIENT_HTTP_ERRORS = (httpx.NetworkError, httpx.TimeoutException)


class ReputationApiError(Exception):
    """A reputation API returned an unusable response."""


class TokenBucket:
    """Client-side request budget refilled continuously over time.

    Args:
        capacity: Largest burst allowed
        refill_rate: Requests regained per second
    """

    def __init__(self, capacity: int, refill_rate: float) -> None:
        self.capacity = capacity
        self.refill_rate = refill_rate
        self.tokens = float(capacity)
        self._updated = time.monotonic()

    async def acquire(self) -> bool:
        """Spend one request if the budget allows it."""
        now = time.monotonic()
        self.tokens = min(self.capacity, self.tokens + (now - self._updated) * self.refill_rate)
        self._updated = now

        if self.tokens < 1:
            return False
        self.tokens -= 1
        return True

    async def take(self, poll_interval: float = 0.1) -> None:
        """Wait until one request can be spent."""
        while not await self.acquire():
            await asyncio.sleep(poll_interval)


class ApiClient:
    """Base for the reputation clients, rate limited per API.

    Network failures and timeouts are retried with exponential backoff.
    HTTP status errors are logged and raised at once, since a 4xx from
    these APIs does not improve on retry.
    """

    source = "api"

    def __init__(
        self,
        base_url: str,
        session: httpx.AsyncClient | None = None,
        requests_per_second: float = 5.0,
        timeout: float = 30.0,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.session = session or httpx.AsyncClient()
        self.timeout = timeout
        self.rate_limiter = TokenBucket(
            capacity=max(int(requests_per_second), 1), refill_rate=requests_per_second
        )
        self.retry_config = AsyncRetrying(
            stop=stop_after_attempt(3),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(TRANSIENT_HTTP_ERRORS),
            reraise=True,
        )

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}" if endpoint else self.base_url

    async def _make_request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Send one request within the rate budget and decode its JSON body.

        Raises:
            httpx.HTTPError: Status errors, or transport errors after retries
        """
        await self.rate_limiter.take()
        url = self._url(endpoint)

        async for attempt in self.retry_config.copy():
            with attempt:
                try:
                    response = await self.session.request(
                        method, url, params=params, headers=headers, json=json, timeout=self.timeout
                    )
                    response.raise_for_status()
                except httpx.HTTPError as e:
                    status = e.response.status_code if isinstance(e, httpx.HTTPStatusError) else None
                    logger.warning(
                        "Reputation API call failed",
                        source=self.source,
                        endpoint=endpoint,
                        status_code=status,
                        error_type=type(e).__name__,
                        attempt=attempt.retry_state.attempt_number,
                    )
                    raise
                return response.json()

    async def close(self) -> None:
        await self.session.aclose()

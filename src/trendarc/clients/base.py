"""Base async HTTP client for upstream collaborators (event search, AI).

Every outbound client shares:
- a pooled httpx.AsyncClient opened by ``async with``
- a token-bucket rate limiter
- retries with exponential backoff on 429/502/503/504, timeouts and
  network errors
- a single exception type, APIProviderError

Usage:
    class NewsClient(BaseAsyncClient):
        def __init__(self) -> None:
            super().__init__(base_url="https://news.example.com", rate_limit=2)

        async def search(self, query: str) -> dict:
            return await self.get("/search", params={"q": query})

    async with NewsClient() as client:
        payload = await client.search("apple harvest")
"""

import asyncio
import logging
from typing import Any

import httpx

logger = logging.getLogger(__name__)

# Retry configuration
_RETRYABLE_STATUS_CODES = {429, 502, 503, 504}
_MAX_RETRIES = 3
_BASE_BACKOFF = 1.0  # seconds


class RateLimiter:
    """Token bucket rate limiter for async callers.

    Args:
        rate: Maximum requests per second
    """

    def __init__(self, rate: int) -> None:
        self.rate = rate
        self.tokens: float = rate
        self.updated_at: float | None = None
        self._lock = asyncio.Lock()

    async def acquire(self) -> None:
        """Take one token, sleeping until one is available."""
        async with self._lock:
            loop = asyncio.get_running_loop()
            if self.updated_at is None:
                self.updated_at = loop.time()

            while self.tokens < 1:
                now = loop.time()
                self.tokens = min(self.rate, self.tokens + (now - self.updated_at) * self.rate)
                self.updated_at = now
                if self.tokens < 1:
                    await asyncio.sleep((1 - self.tokens) / self.rate)

            self.tokens -= 1
            self.updated_at = loop.time()


class APIProviderError(Exception):
    """Raised when an upstream HTTP call fails for good."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        response_body: str | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class BaseAsyncClient:
    """Rate-limited, retrying async HTTP client.

    Args:
        base_url: Base URL for all requests
        headers: Default headers
        rate_limit: Maximum requests per second (default: 10)
        timeout: Request timeout in seconds (default: 30)
        max_retries: Retries after the first attempt (default: 3)
        backoff: Base backoff in seconds, doubled per attempt (default: 1)
    """

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        rate_limit: int = 10,
        timeout: float = 30.0,
        max_retries: int = _MAX_RETRIES,
        backoff: float = _BASE_BACKOFF,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.headers = headers or {}
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff = backoff
        self._rate_limiter = RateLimiter(rate=rate_limit)
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "BaseAsyncClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers=self.headers,
            timeout=self.timeout,
            limits=httpx.Limits(max_keepalive_connections=5, max_connections=10),
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    async def _retry_or_raise(self, attempt: int, error: APIProviderError, endpoint: str) -> None:
        """Sleep before the next attempt, or raise if none are left."""
        if attempt >= self.max_retries:
            logger.error("%s for %s (giving up)", error, endpoint)
            raise error
        delay = self.backoff * (2 ** attempt)
        logger.warning(
            "%s for %s, retrying in %.1fs (attempt %d/%d)",
            error, endpoint, delay, attempt + 1, self.max_retries + 1,
        )
        await asyncio.sleep(delay)

    async def _request(
        self,
        method: str,
        endpoint: str,
        params: dict[str, Any] | None = None,
        json_data: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Make a rate-limited HTTP request and parse the JSON body.

        Args:
            method: HTTP method
            endpoint: Path relative to base_url
            params: Query parameters
            json_data: JSON body

        Returns:
            Parsed JSON response

        Raises:
            APIProviderError: On a non-retryable status, an unparseable body,
                or when retries are exhausted
        """
        if not self._client:
            raise RuntimeError("Client not initialized. Use async with context manager.")

        if not endpoint.startswith("/"):
            endpoint = f"/{endpoint}"

        for attempt in range(self.max_retries + 1):
            await self._rate_limiter.acquire()
            logger.debug("%s %s%s params=%s (attempt %d)", method, self.base_url, endpoint, params, attempt + 1)

            try:
                response = await self._client.request(method, endpoint, params=params, json=json_data)
            except httpx.TimeoutException as e:
                await self._retry_or_raise(attempt, APIProviderError(f"Request timeout: {e}"), endpoint)
                continue
            except httpx.NetworkError as e:
                await self._retry_or_raise(attempt, APIProviderError(f"Network error: {e}"), endpoint)
                continue

            if response.status_code >= 400:
                error = APIProviderError(
                    message=f"API request failed: {response.status_code}",
                    status_code=response.status_code,
                    response_body=response.text[:500],
                )
                if response.status_code in _RETRYABLE_STATUS_CODES:
                    await self._retry_or_raise(attempt, error, endpoint)
                    continue
                logger.error("API error: %d %s - %s", response.status_code, endpoint, error.response_body)
                raise error

            try:
                return response.json()
            except ValueError as e:
                raise APIProviderError(
                    message=f"Invalid JSON response: {e}",
                    status_code=response.status_code,
                    response_body=response.text[:500],
                ) from e

        raise APIProviderError("Request failed after retries")

    async def get(self, endpoint: str, params: dict[str, Any] | None = None) -> dict[str, Any]:
        return await self._request("GET", endpoint, params=params)

    async def post(
        self,
        endpoint: str,
        json_data: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        return await self._request("POST", endpoint, params=params, json_data=json_data)

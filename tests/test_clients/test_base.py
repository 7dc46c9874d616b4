"""Tests for the base async client."""

import asyncio
import json

import httpx
import pytest

from trendarc.clients.base import APIProviderError, BaseAsyncClient, RateLimiter

BASE = "https://events.example.com"


def _client(**kwargs) -> BaseAsyncClient:
    return BaseAsyncClient(base_url=BASE, backoff=0.01, **kwargs)


class TestRateLimiter:
    """Tests for the token bucket."""

    def test_created_outside_event_loop(self) -> None:
        """The limiter needs no running loop until first use."""
        limiter = RateLimiter(rate=5)
        assert limiter.tokens == 5
        assert limiter.updated_at is None

    @pytest.mark.asyncio
    async def test_burst_under_limit(self) -> None:
        """Up to `rate` tokens are available immediately."""
        limiter = RateLimiter(rate=10)
        loop = asyncio.get_running_loop()
        start = loop.time()
        for _ in range(5):
            await limiter.acquire()
        assert loop.time() - start < 0.1

    @pytest.mark.asyncio
    async def test_waits_when_empty(self) -> None:
        """The third call at 2 req/s waits for a refill."""
        limiter = RateLimiter(rate=2)
        loop = asyncio.get_running_loop()
        await limiter.acquire()
        await limiter.acquire()

        start = loop.time()
        await limiter.acquire()
        assert loop.time() - start > 0.3


class TestBaseAsyncClient:
    """Tests for request handling."""

    @pytest.mark.asyncio
    async def test_lifecycle(self, respx_mock) -> None:
        """The pooled client exists only inside `async with`."""
        respx_mock.get(f"{BASE}/search").mock(return_value=httpx.Response(200, json={"ok": True}))

        async with _client(headers={"User-Agent": "test"}) as client:
            assert client._client is not None
            assert await client.get("search") == {"ok": True}

        assert client._client is None

    @pytest.mark.asyncio
    async def test_requires_context_manager(self) -> None:
        """Using the client unopened is a programming error."""
        with pytest.raises(RuntimeError, match="not initialized"):
            await _client().get("/search")

    @pytest.mark.asyncio
    async def test_params_and_post_body(self, respx_mock) -> None:
        """Query params and JSON bodies reach the server."""
        get_route = respx_mock.get(f"{BASE}/search", params={"q": "apple"}).mock(
            return_value=httpx.Response(200, json={"hits": 1})
        )
        post_route = respx_mock.post(f"{BASE}/verify").mock(
            return_value=httpx.Response(200, json={"created": True})
        )

        async with _client() as client:
            assert await client.get("/search", params={"q": "apple"}) == {"hits": 1}
            assert await client.post("/verify", json_data={"keyword": "apple"}) == {"created": True}

        assert get_route.called
        assert json.loads(post_route.calls.last.request.content) == {"keyword": "apple"}

    @pytest.mark.asyncio
    async def test_client_error_not_retried(self, respx_mock) -> None:
        """4xx other than 429 raise at once with status and body."""
        route = respx_mock.get(f"{BASE}/missing").mock(return_value=httpx.Response(404, text="Not Found"))

        async with _client() as client:
            with pytest.raises(APIProviderError) as exc_info:
                await client.get("/missing")

        assert exc_info.value.status_code == 404
        assert "Not Found" in exc_info.value.response_body
        assert route.call_count == 1

    @pytest.mark.asyncio
    async def test_invalid_json(self, respx_mock) -> None:
        """An unparseable body is an APIProviderError."""
        respx_mock.get(f"{BASE}/html").mock(return_value=httpx.Response(200, text="<html>"))

        async with _client() as client:
            with pytest.raises(APIProviderError, match="Invalid JSON"):
                await client.get("/html")


class TestRetryBehavior:
    """Tests for retries with backoff."""

    @pytest.mark.asyncio
    async def test_retries_on_429(self, respx_mock) -> None:
        """Rate-limit responses are retried until success."""
        route = respx_mock.get(f"{BASE}/busy")
        route.side_effect = [
            httpx.Response(429, text="Too Many Requests"),
            httpx.Response(429, text="Too Many Requests"),
            httpx.Response(200, json={"ok": True}),
        ]

        async with _client() as client:
            assert await client.get("/busy") == {"ok": True}
        assert route.call_count == 3

    @pytest.mark.asyncio
    async def test_exhausts_retries(self, respx_mock) -> None:
        """After 1 + max_retries attempts the last error propagates."""
        route = respx_mock.get(f"{BASE}/down").mock(return_value=httpx.Response(503, text="Down"))

        async with _client(max_retries=2) as client:
            with pytest.raises(APIProviderError) as exc_info:
                await client.get("/down")

        assert exc_info.value.status_code == 503
        assert route.call_count == 3

    @pytest.mark.asyncio
    async def test_retries_on_timeout(self, respx_mock) -> None:
        """Timeouts are retried."""
        route = respx_mock.get(f"{BASE}/slow")
        route.side_effect = [
            httpx.ReadTimeout("timed out"),
            httpx.Response(200, json={"late": True}),
        ]

        async with _client() as client:
            assert await client.get("/slow") == {"late": True}

    @pytest.mark.asyncio
    async def test_network_error_exhausted(self, respx_mock) -> None:
        """Persistent network errors end in APIProviderError."""
        respx_mock.get(f"{BASE}/offline").mock(side_effect=httpx.ConnectError("refused"))

        async with _client(max_retries=1) as client:
            with pytest.raises(APIProviderError, match="Network error"):
                await client.get("/offline")

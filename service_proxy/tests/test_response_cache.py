"""
Unit tests for the Redis response cache.
"""

import httpx
import pytest
from fastapi import BackgroundTasks
from unittest.mock import AsyncMock, patch

from shared.metrics import MetricsCollector
from service_proxy.app.caching.response_cache import ResponseCache
from service_proxy.app.models import UpstreamResponse


KEY = "https://upstream.example.com/?abc123"


def ok_response(**headers):
    return UpstreamResponse(
        status_code=200,
        headers=httpx.Headers({"content-type": "application/json", **headers}),
        body=b'[{"id": 1}]',
    )


class TestResponseCache:
    """Test cases for ResponseCache."""

    @pytest.fixture
    def metrics(self):
        return MetricsCollector("proxy")

    @pytest.fixture
    def cache(self, fake_redis, metrics):
        return ResponseCache("redis://localhost:6379/0", redis_client=fake_redis, metrics=metrics)

    @pytest.mark.asyncio
    async def test_round_trip_rewrites_freshness(self, cache):
        stored = cache.prepare_for_storage(
            ok_response(**{"cache-control": "no-store", "expires": "Thu, 01 Jan 1970 00:00:00 GMT"}),
            60,
        )
        assert await cache.store(KEY, stored, 60) is True

        cached = await cache.lookup(KEY)

        assert cached is not None
        assert cached.status_code == 200
        assert cached.body == b'[{"id": 1}]'
        assert cached.headers["cache-control"] == "max-age=60"
        assert "expires" not in cached.headers
        assert "cached_at" in cached.hint

    @pytest.mark.asyncio
    async def test_store_uses_ttl_and_prefix(self, cache, fake_redis):
        await cache.store(KEY, ok_response(), 45)

        assert fake_redis.ttls["proxy-cache:" + KEY] == 45

    @pytest.mark.asyncio
    async def test_duplicate_headers_survive(self, cache):
        response = UpstreamResponse(
            status_code=200,
            headers=httpx.Headers([("set-cookie", "a=1"), ("set-cookie", "b=2")]),
            body=b"",
        )
        await cache.store(KEY, response, 60)

        cached = await cache.lookup(KEY)

        assert cached.headers.get_list("set-cookie") == ["a=1", "b=2"]

    @pytest.mark.asyncio
    async def test_lookup_miss(self, cache, metrics):
        assert await cache.lookup(KEY) is None
        assert metrics.registry.get_sample_value("cache_lookups_total", {"result": "miss"}) == 1.0

    @pytest.mark.asyncio
    async def test_invalidate_removes_entry(self, cache, fake_redis):
        await cache.store(KEY, ok_response(), 60)

        await cache.invalidate(KEY)

        assert await cache.lookup(KEY) is None
        assert fake_redis.deleted == ["proxy-cache:" + KEY]

    @pytest.mark.asyncio
    async def test_invalidate_missing_key_is_silent(self, cache):
        await cache.invalidate("https://upstream.example.com/?missing")

    @pytest.mark.asyncio
    async def test_lookup_error_is_a_miss(self, cache):
        with patch.object(cache, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_redis = AsyncMock()
            mock_redis.get.side_effect = ConnectionError("redis down")
            mock_get_redis.return_value = mock_redis

            assert await cache.lookup(KEY) is None

    @pytest.mark.asyncio
    async def test_store_error_is_swallowed(self, cache, metrics):
        with patch.object(cache, '_get_redis', new_callable=AsyncMock) as mock_get_redis:
            mock_redis = AsyncMock()
            mock_redis.set.side_effect = ConnectionError("redis down")
            mock_get_redis.return_value = mock_redis

            assert await cache.store(KEY, ok_response(), 60) is False

        assert metrics.registry.get_sample_value("cache_writes_total", {"outcome": "error"}) == 1.0

    @pytest.mark.asyncio
    async def test_corrupt_entry_is_a_miss(self, cache, fake_redis):
        fake_redis.data["proxy-cache:" + KEY] = b"not json"
        assert await cache.lookup(KEY) is None

    @pytest.mark.asyncio
    async def test_store_async_runs_in_background(self, cache, fake_redis):
        tasks = BackgroundTasks()

        cache.store_async(KEY, ok_response(), 60, tasks)
        assert fake_redis.data == {}

        await tasks()
        assert "proxy-cache:" + KEY in fake_redis.data

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("no-cache", True),
            ("No-Cache, max-age=0", True),
            ("max-age=0", False),
            (None, False),
        ],
    )
    def test_should_bypass(self, value, expected):
        headers = httpx.Headers({"cache-control": value} if value else {})
        assert ResponseCache.should_bypass(headers) is expected

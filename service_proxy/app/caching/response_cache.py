"""
Redis-backed response cache for the proxy.
"""

import base64
import json
import time
from typing import Any, Dict, Optional, TYPE_CHECKING

import httpx
import redis.asyncio as redis
from fastapi import BackgroundTasks

from shared.logging import get_logger

from ..models import UpstreamResponse

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class ResponseCache:
    """Shared response cache keyed by derived cache keys.

    Reads and deletes never raise: a broken cache degrades to a pass-through
    proxy rather than failing requests.
    """

    def __init__(
        self,
        redis_url: str,
        *,
        key_prefix: str = "proxy-cache:",
        metrics: Optional["MetricsCollector"] = None,
        redis_client: Optional[redis.Redis] = None,
    ):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.metrics = metrics
        self.logger = get_logger("proxy.cache")
        self._redis: Optional[redis.Redis] = redis_client

    async def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.from_url(self.redis_url)
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    @staticmethod
    def should_bypass(headers: httpx.Headers) -> bool:
        """Clients force a fresh fetch with ``cache-control: no-cache``."""
        return "no-cache" in headers.get("cache-control", "").lower()

    async def lookup(self, key: str) -> Optional[UpstreamResponse]:
        """Return the cached response for key, or None."""
        try:
            redis_client = await self._get_redis()
            cached = await redis_client.get(self._make_key(key))
        except Exception as exc:
            self.logger.error("Cache lookup error", error=str(exc))
            self._count("cache_lookups_total", result="error")
            return None

        if cached is None:
            self._count("cache_lookups_total", result="miss")
            return None

        try:
            response = self.decode_entry(cached)
        except (ValueError, KeyError, TypeError) as exc:
            self.logger.error("Discarding undecodable cache entry", error=str(exc))
            self._count("cache_lookups_total", result="error")
            return None

        self._count("cache_lookups_total", result="hit")
        return response

    async def invalidate(self, key: str) -> None:
        """Best-effort deletion; a missing key is not an error."""
        try:
            redis_client = await self._get_redis()
            deleted = await redis_client.delete(self._make_key(key))
            self.logger.debug("Cache entry invalidated", deleted=deleted)
        except Exception as exc:
            self.logger.error("Cache invalidate error", error=str(exc))
        self._count("cache_lookups_total", result="bypass")

    async def store(self, key: str, response: UpstreamResponse, ttl: int) -> bool:
        """Write a response with the given TTL. Failures are logged only."""
        try:
            redis_client = await self._get_redis()
            await redis_client.set(self._make_key(key), self.encode_entry(response), ex=ttl)
        except Exception as exc:
            self.logger.error("Cache store error", error=str(exc))
            self._count("cache_writes_total", outcome="error")
            return False

        self.logger.debug("Cached response", ttl=ttl, status_code=response.status_code)
        self._count("cache_writes_total", outcome="ok")
        return True

    def store_async(
        self,
        key: str,
        response: UpstreamResponse,
        ttl: int,
        background_tasks: BackgroundTasks,
    ) -> None:
        """Schedule a store to run after the response has been sent."""
        background_tasks.add_task(self.store, key, response, ttl)

    @staticmethod
    def prepare_for_storage(response: UpstreamResponse, ttl: int) -> UpstreamResponse:
        """Freshness is governed by the proxy TTL, not upstream expiry."""
        headers = httpx.Headers(response.headers)
        headers["cache-control"] = f"max-age={ttl}"
        if "expires" in headers:
            del headers["expires"]

        hint = dict(response.hint)
        hint.setdefault("cached_at", time.time())
        return UpstreamResponse(
            status_code=response.status_code,
            headers=headers,
            body=response.body,
            hint=hint,
        )

    @staticmethod
    def encode_entry(response: UpstreamResponse) -> str:
        payload: Dict[str, Any] = {
            "status_code": response.status_code,
            "headers": [list(item) for item in response.header_items()],
            "body": base64.b64encode(response.body).decode("ascii"),
            "hint": response.hint,
        }
        return json.dumps(payload)

    @staticmethod
    def decode_entry(raw: Any) -> UpstreamResponse:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        payload = json.loads(raw)
        return UpstreamResponse(
            status_code=int(payload["status_code"]),
            headers=httpx.Headers([(name, value) for name, value in payload["headers"]]),
            body=base64.b64decode(payload["body"]),
            hint=payload.get("hint") or {},
        )

    async def ping(self) -> bool:
        """Check Redis connectivity."""
        try:
            redis_client = await self._get_redis()
            return bool(await redis_client.ping())
        except Exception as exc:
            self.logger.warning("Cache ping failed", error=str(exc))
            return False

    async def close(self) -> None:
        """Close Redis connections."""
        if self._redis is not None:
            try:
                await self._redis.aclose()
            except Exception as exc:  # pragma: no cover - close is best effort
                self.logger.warning("Cache close failed", error=str(exc))
            self._redis = None

    def _count(self, metric_name: str, **labels: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter(metric_name, **labels)

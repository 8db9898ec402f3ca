"""
Per-request proxy pipeline.
"""

from typing import Optional, TYPE_CHECKING

from fastapi import BackgroundTasks

from shared.config import ProxyConfig
from shared.logging import get_logger, set_cache_key

from ..adapters.upstream_client import UpstreamClient, build_target_url
from ..caching.cache_key import build_cache_key
from ..caching.response_cache import ResponseCache
from ..models import InboundRequest, UpstreamResponse
from ..validation.request_validator import RequestValidator
from .normalizer import ResponseNormalizer

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


class ProxyPipeline:
    """Validate, consult the cache, forward, normalize and schedule storage."""

    def __init__(
        self,
        config: ProxyConfig,
        cache: ResponseCache,
        upstream: UpstreamClient,
        *,
        validator: Optional[RequestValidator] = None,
        normalizer: Optional[ResponseNormalizer] = None,
        metrics: Optional["MetricsCollector"] = None,
    ):
        self.config = config
        self.cache = cache
        self.upstream = upstream
        self.validator = validator or RequestValidator(config)
        self.normalizer = normalizer or ResponseNormalizer(metrics)
        self.metrics = metrics
        self.logger = get_logger("proxy.pipeline")

    async def handle(self, request: InboundRequest, background_tasks: BackgroundTasks) -> UpstreamResponse:
        """Produce the client response for one request.

        Never raises: any unexpected failure becomes a 500 envelope.
        """
        try:
            return await self._handle(request, background_tasks)
        except Exception as exc:
            return self.normalizer.from_exception(exc)

    async def _handle(self, request: InboundRequest, background_tasks: BackgroundTasks) -> UpstreamResponse:
        rejection = self.validator.validate(request)
        if rejection is not None:
            if self.metrics is not None:
                self.metrics.increment_counter(
                    "validation_failures_total", status_code=str(rejection.http_status_code)
                )
            return UpstreamResponse.from_envelope(rejection)

        target_url = build_target_url(request.url, self.config)
        cache_key = build_cache_key(target_url, request.method, request.body)
        set_cache_key(cache_key)

        if self.cache.should_bypass(request.headers):
            await self.cache.invalidate(cache_key)
        else:
            cached = await self.cache.lookup(cache_key)
            if cached is not None:
                self.logger.debug("Cache hit")
                return cached

        try:
            response = await self.upstream.forward(request)
        except Exception as exc:
            return self.normalizer.from_exception(exc)

        if response.status_code == 200:
            response = self.cache.prepare_for_storage(response, self.config.ttl)
            self.cache.store_async(cache_key, response, self.config.ttl, background_tasks)
            return response

        return self.normalizer.normalize(response)

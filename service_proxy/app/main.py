"""
Edge caching proxy service.
"""

from typing import Dict, Optional

import httpx
from fastapi import BackgroundTasks, Request, Response

from shared.base_service import BaseService
from shared.config import ProxyConfig
from shared.errors import PayloadTooLargeError

from service_proxy.app.adapters.upstream_client import UpstreamClient
from service_proxy.app.caching.response_cache import ResponseCache
from service_proxy.app.domain.pipeline import ProxyPipeline
from service_proxy.app.models import InboundRequest, UpstreamResponse


# Everything an HTTP/1.1 client can send
ROUTED_METHODS = (
    "GET", "HEAD", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "TRACE", "CONNECT",
)


class ProxyService(BaseService):
    """Caching reverse proxy in front of a single upstream API."""

    def __init__(
        self,
        config: Optional[ProxyConfig] = None,
        *,
        cache: Optional[ResponseCache] = None,
        upstream: Optional[UpstreamClient] = None,
    ):
        super().__init__("proxy", config)
        self.cache = cache or ResponseCache(
            self.config.redis_url,
            key_prefix=self.config.cache_key_prefix,
            metrics=self.metrics,
        )
        self.upstream = upstream or UpstreamClient(self.config, metrics=self.metrics)
        self.pipeline = ProxyPipeline(
            self.config,
            self.cache,
            self.upstream,
            metrics=self.metrics,
        )

        self._setup_proxy_routes()

        self.logger.info(
            "Proxy configured",
            target=f"{self.config.target_protocol}://{self.config.target_hostname}:{self.config.target_port}",
            path_prefix=self.config.target_path_prefix,
            ttl=self.config.ttl,
            request_timeout=self.config.request_timeout,
            require_https=self.config.require_https,
            allow_binary_data=self.config.allow_binary_data,
        )

        # Expose service instance via app state for introspection/testing
        self.app.state.proxy_service = self

    def _setup_proxy_routes(self):
        """Register the catch-all route after the operational routes."""
        # Starlette defaults a bare route to GET/HEAD. Every method is routed
        # so unsupported ones reach the validator and get the 405 envelope
        self.app.add_route(
            "/{path:path}",
            self.proxy_request,
            methods=list(ROUTED_METHODS),
            include_in_schema=False,
        )

    async def proxy_request(self, request: Request) -> Response:
        """Run one client request through the pipeline."""
        inbound = InboundRequest(
            method=request.method,
            url=httpx.URL(str(request.url)),
            headers=httpx.Headers(request.headers.raw),
            body=await self._read_body(request),
        )
        background_tasks = BackgroundTasks()
        result = await self.pipeline.handle(inbound, background_tasks)
        return self.to_response(result, background_tasks)

    async def _read_body(self, request: Request) -> bytes:
        """Buffer the request body, bounded by max_body_bytes."""
        limit = self.config.max_body_bytes
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > limit:
            raise PayloadTooLargeError(limit)

        body = bytearray()
        async for chunk in request.stream():
            body.extend(chunk)
            if len(body) > limit:
                raise PayloadTooLargeError(limit)
        return bytes(body)

    @staticmethod
    def to_response(result: UpstreamResponse, background_tasks: Optional[BackgroundTasks] = None) -> Response:
        """Render a pipeline result, keeping duplicate headers."""
        response = Response(
            content=result.body,
            status_code=result.status_code,
            background=background_tasks,
        )
        response.raw_headers = [
            (name.lower(), value)
            for name, value in result.headers.raw
            if name.lower() != b"content-length"
        ] + [(b"content-length", str(len(result.body)).encode("latin-1"))]
        return response

    async def shutdown(self):
        """Release the upstream client and the Redis connection."""
        await self.upstream.close()
        await self.cache.close()

    async def _check_dependencies(self) -> Dict[str, str]:
        """Check proxy dependencies."""
        return {"redis": "ok" if await self.cache.ping() else "error"}


def create_app(config: Optional[ProxyConfig] = None):
    """Create FastAPI application."""
    service = ProxyService(config)
    return service.app


if __name__ == "__main__":
    service = ProxyService()
    service.run()

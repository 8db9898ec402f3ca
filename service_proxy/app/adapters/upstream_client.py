"""
Upstream API client for the proxy.
"""

import asyncio
import time
from typing import Optional, TYPE_CHECKING

import httpx

from shared.config import ProxyConfig
from shared.logging import get_logger

from ..models import InboundRequest, UpstreamResponse

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


# The upstream emits error bodies uncompressed and without a
# content-encoding header whenever compression was requested, so
# accept-encoding never reaches it.
DROPPED_REQUEST_HEADERS = frozenset({
    "accept-encoding",
    "host",
    "content-length",
    "transfer-encoding",
    "connection",
})

# httpx hands back a decoded, fully buffered body.
DROPPED_RESPONSE_HEADERS = frozenset({
    "content-encoding",
    "content-length",
    "transfer-encoding",
    "connection",
})

CONNECT_TIMEOUT_SECONDS = 10.0


def build_target_url(url: httpx.URL, config: ProxyConfig) -> httpx.URL:
    """Point an inbound URL at the configured upstream, keeping path and query."""
    # raw_path keeps the client's percent-encoding and the query string
    raw_path = url.raw_path
    if config.target_path_prefix:
        raw_path = config.target_path_prefix.encode("utf-8") + raw_path
    return url.copy_with(
        scheme=config.target_protocol,
        host=config.target_hostname,
        port=config.target_port,
        raw_path=raw_path,
    )


class UpstreamClient:
    """Forwards buffered requests to the upstream under a deadline."""

    def __init__(
        self,
        config: ProxyConfig,
        *,
        metrics: Optional["MetricsCollector"] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.config = config
        self.metrics = metrics
        self.logger = get_logger("proxy.upstream")
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(None, connect=CONNECT_TIMEOUT_SECONDS),
                follow_redirects=False,
                transport=self._transport,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def build_request(self, inbound: InboundRequest) -> httpx.Request:
        """Rewrite the inbound request for the upstream target."""
        headers = [
            (name, value)
            for name, value in inbound.headers.multi_items()
            if name.lower() not in DROPPED_REQUEST_HEADERS
        ]
        return httpx.Request(
            inbound.normalized_method,
            build_target_url(inbound.url, self.config),
            headers=headers,
            content=inbound.body or None,
        )

    async def forward(self, inbound: InboundRequest) -> UpstreamResponse:
        """Send the request, or yield a 504 envelope once the deadline passes.

        Transport failures propagate as ``httpx.RequestError`` for the
        normalizer to classify. There is a single attempt, never a retry.
        """
        request = self.build_request(inbound)
        deadline = max(self.config.upstream_deadline, 0.0)

        send_task = asyncio.ensure_future(self._send(request))
        done, _ = await asyncio.wait({send_task}, timeout=deadline)

        if send_task not in done:
            send_task.cancel()
            self.logger.warning(
                "Upstream deadline exceeded",
                url=str(request.url),
                deadline_seconds=deadline,
            )
            self._count("504")
            return UpstreamResponse.error(504, "Gateway Timeout")

        return send_task.result()

    async def _send(self, request: httpx.Request) -> UpstreamResponse:
        start_time = time.time()
        response = await self._get_client().send(request)
        duration = time.time() - start_time

        self.logger.debug(
            "Upstream responded",
            url=str(request.url),
            status_code=response.status_code,
            duration_ms=round(duration * 1000, 2),
        )
        self._count(str(response.status_code))
        if self.metrics is not None:
            self.metrics.get_metric("upstream_request_duration_seconds").observe(duration)

        headers = httpx.Headers([
            (name, value)
            for name, value in response.headers.multi_items()
            if name.lower() not in DROPPED_RESPONSE_HEADERS
        ])
        return UpstreamResponse(
            status_code=response.status_code,
            headers=headers,
            body=response.content,
            hint={"http_version": response.http_version},
        )

    def _count(self, status_code: str) -> None:
        if self.metrics is not None:
            self.metrics.increment_counter("upstream_requests_total", status_code=status_code)

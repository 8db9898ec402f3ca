"""
Upstream response and error normalization.

The upstream reports failures in several shapes: plain text mislabelled as
JSON, pipeline dumps carrying a ``threads`` field, blank messages and error
documents wrapped inside another error document. This module folds all of
them, and transport failures, into the proxy's error envelope.
"""

import errno
import json
import socket
from typing import Any, Dict, Iterator, Optional, Tuple, TYPE_CHECKING

import httpx

from shared.logging import get_logger

from ..models import UpstreamResponse

if TYPE_CHECKING:  # pragma: no cover - imported for typing only
    from shared.metrics import MetricsCollector


SERVICE_UNAVAILABLE_ERRNOS = frozenset({errno.ECONNREFUSED, errno.ECONNABORTED})
GATEWAY_TIMEOUT_ERRNOS = frozenset({errno.ETIMEDOUT, errno.ECONNRESET, errno.EHOSTUNREACH})

HOST_NOT_FOUND_EAI = frozenset(
    code for code in (getattr(socket, "EAI_NONAME", None), getattr(socket, "EAI_NODATA", None))
    if code is not None
)
DNS_RETRY_EAI = frozenset(
    code for code in (getattr(socket, "EAI_AGAIN", None),) if code is not None
)


class ResponseNormalizer:
    """Produces the client-visible response for upstream outcomes."""

    def __init__(self, metrics: Optional["MetricsCollector"] = None):
        self.metrics = metrics
        self.logger = get_logger("proxy.normalizer")

    def normalize(self, response: UpstreamResponse) -> UpstreamResponse:
        """Normalize an upstream (or synthetic timeout) response."""
        if response.status_code == 200:
            return response

        # Only bodies labelled exactly as JSON are inspected
        if response.content_type != "application/json":
            return response

        try:
            payload = json.loads(response.body)
        except ValueError:
            return self._wrap_text(response)

        if not isinstance(payload, dict):
            return response

        if "threads" in payload:
            self._log_upstream_error(response, "pipeline exited")
            return UpstreamResponse.error(500, "Pipeline exited")

        first = _first_error(payload)
        if first is None:
            return response

        if first.get("message") == "":
            self._log_upstream_error(response, "empty error message")
            return UpstreamResponse.error(
                response.status_code, "Server returned empty response error message"
            )

        nested_status = _status_code(first.get("http_status_code"))
        if nested_status is not None:
            nested = _first_error(first)
            nested_message = nested.get("message") if nested is not None else None
            if isinstance(nested_message, str) and nested_message:
                self._log_upstream_error(response, "nested error document")
                return UpstreamResponse.error(nested_status, nested_message)

        return response

    def from_exception(self, exc: BaseException) -> UpstreamResponse:
        """Classify a failure that produced no upstream response."""
        self.logger.error(
            "Upstream request failed",
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        if self.metrics is not None:
            self.metrics.record_error(type(exc).__name__)

        status_code, message = classify_exception(exc)
        return UpstreamResponse.error(status_code, message)

    def _wrap_text(self, response: UpstreamResponse) -> UpstreamResponse:
        # JSON content type with a plain text body such as
        # "Pipeline execution failed or was aborted"
        try:
            text = response.body.decode("utf-8")
        except UnicodeDecodeError as exc:
            self.logger.error("Error decoding upstream body", error=str(exc))
            return UpstreamResponse.error(500, "Error decoding response from server")

        self._log_upstream_error(response, "non-JSON body")
        return UpstreamResponse.error(response.status_code, text)

    def _log_upstream_error(self, response: UpstreamResponse, reason: str) -> None:
        self.logger.warning(
            "Normalizing upstream error",
            reason=reason,
            status_code=response.status_code,
            body=response.body[:2048].decode("utf-8", errors="replace"),
        )


def _first_error(document: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """``document["response_map"]["error_list"][0]`` when every step is well formed.

    Only the path the rules read is checked; other fields may hold anything.
    """
    response_map = document.get("response_map")
    if not isinstance(response_map, dict):
        return None
    error_list = response_map.get("error_list")
    if not isinstance(error_list, list) or not error_list:
        return None
    first = error_list[0]
    return first if isinstance(first, dict) else None


def _status_code(value: Any) -> Optional[int]:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value if 100 <= value <= 599 else None


def _iter_causes(exc: BaseException) -> Iterator[BaseException]:
    """Walk the cause chain, descending into exception groups."""
    pending = [exc]
    seen = set()
    while pending:
        current = pending.pop(0)
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.extend(getattr(current, "exceptions", ()) or ())
        pending.append(current.__cause__ or current.__context__)


def classify_exception(exc: BaseException) -> Tuple[int, str]:
    """Map a failure to the status and message returned to the client."""
    if not isinstance(exc, httpx.RequestError):
        return 500, "Proxy Error"

    if isinstance(exc, httpx.TimeoutException):
        return 504, "Gateway Timeout"

    for cause in _iter_causes(exc):
        if isinstance(cause, socket.gaierror):
            if cause.errno in HOST_NOT_FOUND_EAI:
                return 503, "Service Unavailable"
            if cause.errno in DNS_RETRY_EAI:
                return 504, "Gateway Timeout"
            continue
        if isinstance(cause, OSError) and cause.errno is not None:
            if cause.errno in SERVICE_UNAVAILABLE_ERRNOS:
                return 503, "Service Unavailable"
            if cause.errno in GATEWAY_TIMEOUT_ERRNOS:
                return 504, "Gateway Timeout"

    return 502, "Bad Gateway"

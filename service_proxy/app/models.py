"""
Request and response value types used by the proxy pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import httpx

from shared.errors import ErrorEnvelope


BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
ALLOWED_METHODS = frozenset({"GET", "HEAD", "POST", "PUT", "PATCH", "DELETE"})


@dataclass(frozen=True)
class InboundRequest:
    """Fully buffered client request.

    The body is held as bytes so hashing, validation and forwarding can each
    read it without consuming a stream.
    """

    method: str
    url: httpx.URL
    headers: httpx.Headers
    body: bytes = b""

    @property
    def normalized_method(self) -> str:
        return self.method.upper()

    @property
    def has_body(self) -> bool:
        return len(self.body) > 0

    def query_param(self, name: str) -> Optional[str]:
        return self.url.params.get(name)


@dataclass(frozen=True)
class UpstreamResponse:
    """Buffered response from the upstream or synthesized by the proxy.

    ``hint`` carries opaque metadata that travels with cached entries.
    """

    status_code: int
    headers: httpx.Headers
    body: bytes = b""
    hint: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_envelope(cls, envelope: ErrorEnvelope) -> "UpstreamResponse":
        """Build a JSON response carrying an error envelope."""
        return cls(
            status_code=envelope.http_status_code,
            headers=httpx.Headers({"content-type": "application/json"}),
            body=envelope.to_bytes(),
        )

    @classmethod
    def error(cls, status_code: int, message: str) -> "UpstreamResponse":
        return cls.from_envelope(ErrorEnvelope.build(status_code, message))

    @property
    def content_type(self) -> str:
        return self.headers.get("content-type", "")

    def header_items(self) -> List[Tuple[str, str]]:
        """Headers as an ordered list, duplicates preserved."""
        return list(self.headers.multi_items())

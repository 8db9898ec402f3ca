"""
Request validation for the proxy.

The upstream answers malformed input with a bare 500 and no message, so the
proxy rejects such requests itself. Checks run in a fixed order and stop at
the first failure:

1. bearer token presence (``authorization`` header or ``bearer_token`` query)
2. HTTPS transport when required
3. method allow-list
4. body presence matching the method
5. content type (unless binary data is allowed)
6. JSON well-formedness for JSON bodies
"""

import json
from typing import Any, Optional

from shared.config import ProxyConfig
from shared.errors import ErrorEnvelope
from shared.logging import get_logger

from ..models import ALLOWED_METHODS, BODY_METHODS, InboundRequest


JSON_CONTENT_TYPE = "application/json"
FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
ACCEPTED_CONTENT_TYPES = frozenset({JSON_CONTENT_TYPE, FORM_CONTENT_TYPE})


class RequestValidator:
    """Decides whether an inbound request may proceed."""

    def __init__(self, config: ProxyConfig):
        self.config = config
        self.logger = get_logger("proxy.validator")

    def validate(self, request: InboundRequest) -> Optional[ErrorEnvelope]:
        """Return None to proceed, or the envelope to answer with."""
        for check in (
            self._check_token,
            self._check_transport,
            self._check_method,
            self._check_body_presence,
            self._check_content,
        ):
            envelope = check(request)
            if envelope is not None:
                self.logger.info(
                    "Request rejected",
                    method=request.method,
                    path=request.url.path,
                    status_code=envelope.http_status_code,
                    reason=envelope.message,
                )
                return envelope
        return None

    def _check_token(self, request: InboundRequest) -> Optional[ErrorEnvelope]:
        # Presence only, the upstream verifies the value
        if request.headers.get("authorization") or request.query_param("bearer_token"):
            return None
        return ErrorEnvelope.build(401, "Mismatched bearer token")

    def _check_transport(self, request: InboundRequest) -> Optional[ErrorEnvelope]:
        if self.config.require_https and request.url.scheme != "https":
            return ErrorEnvelope.build(426, "HTTPS is required")
        return None

    def _check_method(self, request: InboundRequest) -> Optional[ErrorEnvelope]:
        if request.normalized_method not in ALLOWED_METHODS:
            return ErrorEnvelope.build(405, "Method not allowed")
        return None

    def _check_body_presence(self, request: InboundRequest) -> Optional[ErrorEnvelope]:
        expects_body = request.normalized_method in BODY_METHODS
        if request.has_body and not expects_body:
            return ErrorEnvelope.build(406, "Body data not expected")
        if expects_body and not request.has_body:
            return ErrorEnvelope.build(406, "Body data expected")
        return None

    def _check_content(self, request: InboundRequest) -> Optional[ErrorEnvelope]:
        if not request.has_body or self.config.allow_binary_data:
            return None

        content_type = request.headers.get("content-type", "")
        if not content_type:
            return ErrorEnvelope.build(406, "Content-Type is required for request type")

        media_type = media_type_of(content_type)
        if media_type not in ACCEPTED_CONTENT_TYPES:
            return ErrorEnvelope.build(406, "Content-Type not acceptable for request type")

        # Form bodies are opaque key/value data, nothing to check
        if media_type == JSON_CONTENT_TYPE:
            try:
                parse_json(request.body)
            except ValueError:
                return ErrorEnvelope.build(400, "JSON body not valid")
        return None


def parse_json(body: bytes) -> Any:
    """Parse a body as strict UTF-8 JSON.

    Rejects what the upstream parser rejects but ``json.loads`` tolerates:
    ``NaN`` and ``Infinity`` literals and UTF-16/32 encoded bytes.
    UnicodeDecodeError is a ValueError, like JSONDecodeError.
    """
    return json.loads(body.decode("utf-8"), parse_constant=_reject_constant)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"{name} is not a JSON value")


def media_type_of(content_type: str) -> str:
    """Media type with any ``;`` parameters dropped."""
    return content_type.split(";", 1)[0]

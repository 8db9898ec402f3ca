"""
Shared error handling for the edge cache proxy.

Every handled failure leaves the proxy in a single envelope shape::

    {"http_status_code": 401,
     "response_map": {"error_list": [{"message": "Mismatched bearer token"}]}}
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel


class ErrorItem(BaseModel):
    """Single entry of an envelope error list."""

    message: str


class ErrorResponseMap(BaseModel):
    """Wrapper holding the error list."""

    error_list: List[ErrorItem]


class ErrorEnvelope(BaseModel):
    """Standard error response format returned to clients."""

    http_status_code: int
    response_map: ErrorResponseMap

    @classmethod
    def build(cls, status_code: int, message: str) -> "ErrorEnvelope":
        """Create an envelope carrying a single message."""
        return cls(
            http_status_code=status_code,
            response_map=ErrorResponseMap(error_list=[ErrorItem(message=message)]),
        )

    @property
    def message(self) -> str:
        return self.response_map.error_list[0].message

    def to_bytes(self) -> bytes:
        return self.model_dump_json().encode("utf-8")


class ProxyException(Exception):
    """Base exception for proxy failures that map to an envelope."""

    def __init__(self, status_code: int, message: str, details: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_envelope(self) -> ErrorEnvelope:
        """Convert to the client-visible envelope. Details stay server side."""
        return ErrorEnvelope.build(self.status_code, self.message)


class PayloadTooLargeError(ProxyException):
    """Request body exceeded the configured buffer limit."""

    def __init__(self, limit: int):
        super().__init__(413, "Request body too large", {"limit_bytes": limit})


class ConfigurationError(Exception):
    """Configuration failed validation at startup."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details: Dict[str, Any] = details or {}
        super().__init__(message)


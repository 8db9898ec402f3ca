"""
Request validation for the proxy.

Validation is purely decisional: it inspects a buffered request and either
lets it through or returns the error envelope to send back.
"""

from .request_validator import RequestValidator

__all__ = ["RequestValidator"]

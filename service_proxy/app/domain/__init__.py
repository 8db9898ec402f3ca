"""
Domain logic for the proxy service.

Holds the upstream response normalizer and the per-request pipeline that
wires validation, caching and forwarding together.
"""

from .normalizer import ResponseNormalizer
from .pipeline import ProxyPipeline

__all__ = ["ProxyPipeline", "ResponseNormalizer"]

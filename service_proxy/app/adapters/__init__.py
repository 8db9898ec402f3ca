"""
Adapters package for the proxy service.

Contains the HTTP client wrapper for the upstream API. The adapter owns
target URL rewriting, header filtering and the request deadline.
"""

from .upstream_client import UpstreamClient, build_target_url

__all__ = ["UpstreamClient", "build_target_url"]

"""
Content-addressed cache keys for proxied requests.
"""

import hashlib
from typing import Union

import httpx


def derive_key(target_url: Union[str, httpx.URL], method: str, body: bytes = b"") -> str:
    """SHA-256 hex digest over ``METHOD|target_url|body``."""
    digest = hashlib.sha256()
    digest.update(f"{method.upper()}|{target_url}|".encode("utf-8"))
    digest.update(body or b"")
    return digest.hexdigest()


def cache_lookup_url(target_url: Union[str, httpx.URL], digest: str) -> str:
    """Address a cache entry as the target origin with the digest as query.

    The path is dropped so every request to one backend host shares a single
    namespace keyed purely by the digest.
    """
    url = httpx.URL(str(target_url))
    return str(url.copy_with(path="/", query=digest.encode("ascii")))


def build_cache_key(target_url: Union[str, httpx.URL], method: str, body: bytes = b"") -> str:
    """Derive the lookup key handed to the response cache."""
    return cache_lookup_url(target_url, derive_key(target_url, method, body))

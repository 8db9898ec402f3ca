"""
Unit tests for cache key derivation.
"""

import hashlib

import httpx

from service_proxy.app.caching.cache_key import build_cache_key, cache_lookup_url, derive_key


TARGET = "https://upstream.example.com/api/1/rest/slsched/feed/Org/pipeline?limit=10"


def test_digest_covers_method_url_and_body():
    expected = hashlib.sha256(f"POST|{TARGET}|".encode() + b'{"a":1}').hexdigest()
    assert derive_key(TARGET, "post", b'{"a":1}') == expected


def test_identical_requests_share_a_key():
    assert derive_key(TARGET, "GET") == derive_key(httpx.URL(TARGET), "get", b"")


def test_any_difference_changes_the_key():
    base = derive_key(TARGET, "POST", b"a=1")

    assert derive_key(TARGET, "PUT", b"a=1") != base
    assert derive_key(TARGET + "&x=1", "POST", b"a=1") != base
    assert derive_key(TARGET, "POST", b"a=2") != base


def test_lookup_url_drops_path_and_replaces_query():
    digest = derive_key(TARGET, "GET")
    assert cache_lookup_url(TARGET, digest) == f"https://upstream.example.com/?{digest}"


def test_lookup_url_keeps_non_default_port():
    url = "http://upstream.example.com:8080/feed?x=1"
    digest = derive_key(url, "GET")
    assert cache_lookup_url(url, digest) == f"http://upstream.example.com:8080/?{digest}"


def test_build_cache_key_is_deterministic():
    first = build_cache_key(TARGET, "GET")
    second = build_cache_key(TARGET, "GET")

    assert first == second
    assert first.endswith(derive_key(TARGET, "GET"))

"""
Shared fixtures for proxy service tests.
"""

import sys
import os
from typing import Any, Dict, Optional

import pytest

sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from shared.config import ProxyConfig


class InMemoryRedis:
    """Just enough of redis.asyncio.Redis for the response cache."""

    def __init__(self):
        self.data: Dict[str, Any] = {}
        self.ttls: Dict[str, Optional[int]] = {}
        self.deleted = []

    async def get(self, key):
        return self.data.get(key)

    async def set(self, key, value, ex=None):
        self.data[key] = value.encode("utf-8") if isinstance(value, str) else value
        self.ttls[key] = ex
        return True

    async def delete(self, *keys):
        self.deleted.extend(keys)
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    async def ping(self):
        return True

    async def aclose(self):
        return None


@pytest.fixture
def config():
    """Proxy configuration pointing at a fake upstream."""
    return ProxyConfig(
        ttl=60,
        target_protocol="https",
        target_hostname="upstream.example.com",
        target_port=443,
        target_path_prefix="/api/1/rest",
    )


@pytest.fixture
def fake_redis():
    return InMemoryRedis()

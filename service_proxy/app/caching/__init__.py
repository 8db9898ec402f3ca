"""
Proxy caching package.

Cache keys are content addressed (method, target URL and body). Entries are
stored in Redis with a fixed TTL and can be invalidated by clients sending
``cache-control: no-cache``.
"""

from .cache_key import build_cache_key, derive_key
from .response_cache import ResponseCache

__all__ = ["ResponseCache", "build_cache_key", "derive_key"]

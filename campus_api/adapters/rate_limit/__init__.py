"""Window store adapters.

The limiter engine depends on the ``WindowStore`` abstraction only, so the
shared Redis store and the in-process fallback are interchangeable behind it.
"""

from campus_api.adapters.rate_limit.base import WindowCount, WindowStore
from campus_api.adapters.rate_limit.in_memory import LocalWindowStore
from campus_api.adapters.rate_limit.redis_store import RedisWindowStore

__all__ = ["LocalWindowStore", "RedisWindowStore", "WindowCount", "WindowStore"]

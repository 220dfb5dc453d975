"""Cache backends.

MemoryCacheProvider keeps entries in process memory with a per-entry TTL;
it is not shared across processes.  RedisCacheProvider is the shared
backend, selected when ``REDIS_URL`` is set and the server answers a ping.
"""

from mediabridge.providers.cache.memory_cache import MemoryCacheProvider
from mediabridge.providers.cache.redis_cache import RedisCacheProvider

__all__ = ["MemoryCacheProvider", "RedisCacheProvider"]

"""Redis cache provider using ``redis.asyncio``.

Shared backend for multi-worker deployments.  Entries expire through Redis'
own ``EX`` TTL.  Every client or connection error is re-raised as
:class:`BackendUnavailableError`; the cache service treats those as a miss
or a skipped write.
"""

from __future__ import annotations

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from mediabridge.interfaces.cache_provider import ICacheProvider
from mediabridge.utils.errors import BackendUnavailableError

logger = structlog.get_logger(logger_name=__name__)

_SOCKET_TIMEOUT = 5.0


class RedisCacheProvider(ICacheProvider):
    """Redis-backed cache.

    Parameters
    ----------
    url:
        Redis connection URL, e.g. ``redis://localhost:6379/0``.
    client:
        Pre-built client; used instead of *url* when given.
    """

    def __init__(self, url: str = "", client: aioredis.Redis | None = None) -> None:
        if client is None:
            client = aioredis.Redis.from_url(
                url,
                decode_responses=True,
                socket_timeout=_SOCKET_TIMEOUT,
                socket_connect_timeout=_SOCKET_TIMEOUT,
            )
        self._client = client

    def _unavailable(self, operation: str, key: str, exc: Exception) -> BackendUnavailableError:
        return BackendUnavailableError(
            message=f"Redis {operation} failed for '{key}': {exc}",
            provider_name=self.get_provider_name(),
        )

    async def get(self, key: str) -> str | None:
        try:
            return await self._client.get(key)
        except (RedisError, OSError) as exc:
            raise self._unavailable("GET", key, exc) from exc

    async def set(self, key: str, value: str, ttl: int) -> None:
        if ttl <= 0:
            return
        try:
            await self._client.set(key, value, ex=ttl)
        except (RedisError, OSError) as exc:
            raise self._unavailable("SET", key, exc) from exc

    async def delete(self, key: str) -> int:
        try:
            return int(await self._client.delete(key))
        except (RedisError, OSError) as exc:
            raise self._unavailable("DEL", key, exc) from exc

    async def exists(self, key: str) -> bool:
        try:
            return bool(await self._client.exists(key))
        except (RedisError, OSError) as exc:
            raise self._unavailable("EXISTS", key, exc) from exc

    async def ping(self) -> bool:
        """Return ``True`` if Redis answers; never raises."""
        try:
            return bool(await self._client.ping())
        except (RedisError, OSError) as exc:
            logger.warning("redis_ping_failed", error=str(exc))
            return False

    def get_provider_name(self) -> str:
        return "redis"

    async def aclose(self) -> None:
        await self._client.aclose()

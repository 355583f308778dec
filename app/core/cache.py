"""
Key-value cache backends.

The decision cache talks to a ``KeyValueCache``. Production uses Redis via
``redis.asyncio``; when no Redis URL is configured there is no backend at
all and callers treat caching as disabled.

Backends translate their own client errors into ``CacheUnavailable`` so the
layer above only has one exception type to absorb.
"""
from typing import Optional, Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from app.core import config
from app.core.errors import CacheUnavailable
from app.utils import get_logger


log = get_logger(__name__)


class KeyValueCache(Protocol):
    """Minimal async key-value contract used by the decision cache."""

    async def get(self, key: str) -> Optional[str]:
        ...

    async def set(self, key: str, value: str, ttl: int) -> None:
        ...

    async def delete(self, *keys: str) -> int:
        ...

    async def list_keys_by_prefix(self, pattern: str) -> list[str]:
        ...


class RedisKeyValueCache:
    """Redis implementation of the KeyValueCache protocol."""

    def __init__(self, client: redis.Redis):
        self._client = client

    @classmethod
    def from_url(cls, url: str) -> "RedisKeyValueCache":
        return cls(redis.from_url(url, decode_responses=True))

    async def get(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except RedisError as exc:
            raise CacheUnavailable(f"redis GET failed: {exc}") from exc

    async def set(self, key: str, value: str, ttl: int) -> None:
        try:
            await self._client.set(key, value, ex=ttl)
        except RedisError as exc:
            raise CacheUnavailable(f"redis SET failed: {exc}") from exc

    async def delete(self, *keys: str) -> int:
        if not keys:
            return 0
        try:
            return await self._client.delete(*keys)
        except RedisError as exc:
            raise CacheUnavailable(f"redis DEL failed: {exc}") from exc

    async def list_keys_by_prefix(self, pattern: str) -> list[str]:
        """List keys matching a glob pattern with SCAN (never KEYS)."""
        try:
            return [key async for key in self._client.scan_iter(match=pattern, count=500)]
        except RedisError as exc:
            raise CacheUnavailable(f"redis SCAN failed: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()


def build_cache_backend(url: Optional[str] = None) -> Optional[KeyValueCache]:
    """
    Build the configured cache backend.

    Returns None when no Redis URL is configured, which disables caching.
    """
    url = url if url is not None else config.REDIS_URL
    if not url:
        log.info("REDIS_URL not set, decision caching disabled")
        return None
    log.info("Decision cache backed by redis")
    return RedisKeyValueCache.from_url(url)

import json
from typing import Any, Optional, List

import redis.asyncio as redis

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger, trace_span
from .interface import CacheInterface

logger = get_logger(__name__)


class RedisCache(CacheInterface):
    """Redis cache with set-based key indices instead of KEYS scans.

    Every key is also recorded in ``cache_index:<prefix>`` where prefix is the
    first ``:``-separated segment, so ``delete_pattern("snapshot:*")`` only
    touches keys it wrote.
    """

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.redis_connection_url
        self._client: Optional[redis.Redis] = None
        self._index_prefix = "cache_index:"

    async def _ensure_connected(self) -> redis.Redis:
        if self._client is None:
            self._client = redis.Redis.from_url(self.url, decode_responses=True)
            logger.info("Redis cache provider connected")
        return self._client

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Redis cache provider disconnected")

    def _index_key(self, key_or_pattern: str) -> str:
        base = key_or_pattern.rstrip("*").rstrip(":").split(":")[0]
        return f"{self._index_prefix}{base}"

    @trace_span
    async def get(self, key: str) -> Optional[Any]:
        try:
            client = await self._ensure_connected()
            value = await client.get(key)
            return json.loads(value) if value is not None else None
        except (redis.RedisError, json.JSONDecodeError) as e:
            logger.error(f"Error getting cache key {key}: {e}")
            return None

    @trace_span
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        try:
            client = await self._ensure_connected()
            serialized = json.dumps(value, default=str)
            if ttl:
                ok = await client.setex(key, ttl, serialized)
            else:
                ok = await client.set(key, serialized)
            if ok:
                await client.sadd(self._index_key(key), key)
            return bool(ok)
        except redis.RedisError as e:
            logger.error(f"Error setting cache key {key}: {e}")
            return False

    @trace_span
    async def delete(self, key: str) -> bool:
        try:
            client = await self._ensure_connected()
            deleted = await client.delete(key)
            await client.srem(self._index_key(key), key)
            return bool(deleted)
        except redis.RedisError as e:
            logger.error(f"Error deleting cache key {key}: {e}")
            return False

    async def _indexed_keys(self, pattern: str) -> List[str]:
        client = await self._ensure_connected()
        if not pattern.endswith("*"):
            return [pattern] if await client.exists(pattern) else []
        prefix = pattern.rstrip("*")
        members = await client.smembers(self._index_key(pattern))
        return [key for key in members if key.startswith(prefix)]

    @trace_span
    async def delete_pattern(self, pattern: str) -> int:
        try:
            keys = await self._indexed_keys(pattern)
            if not keys:
                return 0
            client = await self._ensure_connected()
            deleted = await client.delete(*keys)
            await client.srem(self._index_key(pattern), *keys)
            logger.info(f"Deleted {deleted} cache keys matching pattern {pattern}")
            return deleted
        except redis.RedisError as e:
            logger.error(f"Error deleting cache pattern {pattern}: {e}")
            return 0

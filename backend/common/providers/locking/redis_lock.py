import uuid
from typing import Optional

import redis.asyncio as redis

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger
from .interface import DistributedLockInterface

logger = get_logger(__name__)

# Delete only if the stored token is ours
RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
else
    return 0
end
"""


class RedisLock(DistributedLockInterface):
    """Redis-based lock: SET NX EX to acquire, compare-and-delete to release."""

    def __init__(self, url: Optional[str] = None):
        self.url = url or settings.redis_connection_url
        self._client: Optional[redis.Redis] = None
        self._lock_prefix = "lock:"

    async def connect(self) -> bool:
        try:
            self._client = redis.from_url(self.url, decode_responses=True)
            await self._client.ping()
            logger.info("Redis lock provider connected")
            return True
        except Exception as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._client = None
            return False

    async def disconnect(self) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Redis lock provider disconnected")

    async def _ensure_connected(self) -> bool:
        if self._client is None:
            return await self.connect()
        return True

    async def acquire_lock(
        self, resource_key: str, timeout_seconds: int = 30
    ) -> Optional[str]:
        if not await self._ensure_connected():
            return None

        lock_key = f"{self._lock_prefix}{resource_key}"
        lock_token = str(uuid.uuid4())

        try:
            acquired = await self._client.set(
                lock_key, lock_token, nx=True, ex=timeout_seconds
            )
        except Exception as e:
            logger.error(f"Error acquiring lock for {resource_key}: {e}")
            return None

        if not acquired:
            logger.debug(f"Failed to acquire lock for {resource_key} - already locked")
            return None
        logger.info(f"Acquired lock for {resource_key}")
        return lock_token

    async def release_lock(self, resource_key: str, lock_token: str) -> bool:
        if not await self._ensure_connected():
            return False

        lock_key = f"{self._lock_prefix}{resource_key}"
        try:
            released = await self._client.eval(RELEASE_SCRIPT, 1, lock_key, lock_token)
        except Exception as e:
            logger.error(f"Error releasing lock for {resource_key}: {e}")
            return False

        if not released:
            logger.warning(
                f"Cannot release lock for {resource_key} - token mismatch or lock expired"
            )
            return False
        logger.info(f"Released lock for {resource_key}")
        return True

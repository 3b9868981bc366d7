from typing import Optional

from common.core.config import settings
from common.core.constants import CacheBackend
from common.core.otel_axiom_exporter import get_logger

from .interface import DistributedLockInterface
from .memory_lock import MemoryLock
from .redis_lock import RedisLock

logger = get_logger(__name__)

# Global instance
_lock_provider: Optional[DistributedLockInterface] = None


def get_lock_provider() -> DistributedLockInterface:
    """
    Get the configured lock provider.

    Redis whenever Redis backs the cache; otherwise in-process locks, which
    are only safe with a single worker process.
    """
    global _lock_provider

    if _lock_provider is None:
        if settings.cache_backend == CacheBackend.REDIS:
            _lock_provider = RedisLock()
            logger.info("Initialized Redis lock provider")
        else:
            _lock_provider = MemoryLock()
            logger.info("Initialized in-process lock provider")

    return _lock_provider

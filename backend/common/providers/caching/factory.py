from typing import Optional

from common.core.config import settings
from common.core.constants import CacheBackend
from common.core.otel_axiom_exporter import get_logger

from .interface import CacheInterface
from .memory_cache import MemoryCache
from .passthrough_cache import PassthroughCache
from .redis_cache import RedisCache

logger = get_logger(__name__)

_cache_provider: Optional[CacheInterface] = None


def get_cache_provider() -> CacheInterface:
    """Process-wide cache provider selected by ``settings.cache_backend``."""
    global _cache_provider

    if _cache_provider is None:
        if settings.cache_backend == CacheBackend.REDIS:
            _cache_provider = RedisCache()
        elif settings.cache_backend == CacheBackend.MEMORY:
            _cache_provider = MemoryCache()
        else:
            _cache_provider = PassthroughCache()
        logger.info(f"Initialized {settings.cache_backend.value} cache provider")

    return _cache_provider


def set_cache_provider(provider: Optional[CacheInterface]) -> None:
    """Swap the process-wide provider (tests, worker shutdown)."""
    global _cache_provider
    _cache_provider = provider

import fnmatch
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .interface import CacheInterface
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    value: Any
    expires_at: Optional[float] = None

    def is_expired(self, now: Optional[float] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or time.time()) > self.expires_at


class MemoryCache(CacheInterface):
    """Process-local cache; used for single-process runs and tests."""

    def __init__(self):
        self._cache: Dict[str, CacheEntry] = {}
        logger.info("Memory cache provider initialized")

    def _purge_expired(self) -> None:
        now = time.time()
        for key in [k for k, entry in self._cache.items() if entry.is_expired(now)]:
            del self._cache[key]

    async def get(self, key: str) -> Optional[Any]:
        entry = self._cache.get(key)
        if entry is None:
            return None
        if entry.is_expired():
            del self._cache[key]
            return None
        return entry.value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        expires_at = time.time() + ttl if ttl else None
        self._cache[key] = CacheEntry(value=value, expires_at=expires_at)
        logger.debug(f"Cached key {key} with TTL {ttl}")
        return True

    async def delete(self, key: str) -> bool:
        return self._cache.pop(key, None) is not None

    async def delete_pattern(self, pattern: str) -> int:
        self._purge_expired()
        matching = [key for key in self._cache if fnmatch.fnmatch(key, pattern)]
        for key in matching:
            del self._cache[key]
        return len(matching)

    async def clear(self) -> None:
        self._cache.clear()

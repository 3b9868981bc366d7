from abc import ABC, abstractmethod
from typing import Any, Optional


class CacheInterface(ABC):
    """Key/value cache for derived read models.

    Values must be JSON-serialisable. A cache miss and a backend failure look
    the same to callers: ``get`` returns None.
    """

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> bool:
        """Store ``value`` for ``ttl`` seconds (no expiry when None)."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        pass

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """Delete every key matching a glob such as ``plans:*``; returns the count."""
        pass

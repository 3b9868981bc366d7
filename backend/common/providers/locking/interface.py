from abc import ABC, abstractmethod
from typing import Optional


class DistributedLockInterface(ABC):
    """
    Named, expiring locks shared by every worker process.

    A lock is owned by the token returned from ``acquire_lock``; only that
    token can release it. An owner that dies leaves the lock to expire.
    """

    async def connect(self) -> bool:
        return True

    async def disconnect(self) -> None:
        pass

    @abstractmethod
    async def acquire_lock(
        self, resource_key: str, timeout_seconds: int = 30
    ) -> Optional[str]:
        """
        Acquire a lock without waiting.

        Args:
            resource_key: The resource to lock (e.g., "usage_rollover")
            timeout_seconds: Lock expiration time in seconds

        Returns:
            Lock token if acquired, None if someone else holds it
        """
        pass

    @abstractmethod
    async def release_lock(self, resource_key: str, lock_token: str) -> bool:
        """
        Release a lock held under ``lock_token``.

        Returns:
            True if released, False if the token doesn't match or the lock expired
        """
        pass

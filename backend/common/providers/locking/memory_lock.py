import time
import uuid
from typing import Dict, Optional, Tuple

from common.core.otel_axiom_exporter import get_logger
from .interface import DistributedLockInterface

logger = get_logger(__name__)


class MemoryLock(DistributedLockInterface):
    """Process-local locks for single-process runs and tests."""

    def __init__(self):
        # resource_key -> (token, expires_at)
        self._locks: Dict[str, Tuple[str, float]] = {}

    async def acquire_lock(
        self, resource_key: str, timeout_seconds: int = 30
    ) -> Optional[str]:
        now = time.monotonic()
        held = self._locks.get(resource_key)
        if held and held[1] > now:
            return None

        token = str(uuid.uuid4())
        self._locks[resource_key] = (token, now + timeout_seconds)
        logger.debug(f"Acquired in-process lock for {resource_key}")
        return token

    async def release_lock(self, resource_key: str, lock_token: str) -> bool:
        held = self._locks.get(resource_key)
        if not held or held[0] != lock_token:
            return False
        del self._locks[resource_key]
        return True

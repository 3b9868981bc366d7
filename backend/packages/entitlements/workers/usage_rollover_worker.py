"""
Periodic worker that rolls the monthly usage ledger over.

Every ``rollover_interval_seconds`` it takes the rollover lock and archives
any ledger rows left over from past months. Sweeps are idempotent, so a
missed or repeated run only delays or repeats work that is already safe.
"""

import asyncio
from typing import Optional
from uuid import uuid4

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger
from common.providers.locking.factory import get_lock_provider
from common.providers.locking.interface import DistributedLockInterface
from packages.entitlements.models.domain.usage import RolloverResult
from packages.entitlements.services.usage_ledger_service import UsageLedgerService

logger = get_logger(__name__)

ROLLOVER_LOCK_KEY = "usage_rollover"


class UsageRolloverWorker:
    """Runs ``UsageLedgerService.run_monthly_rollover`` on a fixed interval."""

    def __init__(
        self,
        interval_seconds: Optional[int] = None,
        lock_provider: Optional[DistributedLockInterface] = None,
        usage_service: Optional[UsageLedgerService] = None,
    ):
        self.worker_id = f"usage_rollover_worker_{uuid4()}"
        self.interval_seconds = interval_seconds or settings.rollover_interval_seconds
        self.lock_provider = lock_provider or get_lock_provider()
        self.usage_service = usage_service or UsageLedgerService()
        self.running = False
        self._stopped = asyncio.Event()

    async def run_once(self) -> Optional[RolloverResult]:
        """One sweep under the rollover lock; None when another worker holds it."""
        token = await self.lock_provider.acquire_lock(
            ROLLOVER_LOCK_KEY, settings.rollover_lock_timeout_seconds
        )
        if not token:
            logger.info(
                f"Worker {self.worker_id} skipped rollover; lock held elsewhere"
            )
            return None

        try:
            return await self.usage_service.run_monthly_rollover()
        finally:
            await self.lock_provider.release_lock(ROLLOVER_LOCK_KEY, token)

    async def start(self):
        if self.running:
            logger.warning(f"Worker {self.worker_id} is already running")
            return

        self.running = True
        self._stopped.clear()
        logger.info(
            f"Starting worker {self.worker_id} (every {self.interval_seconds}s)"
        )

        while self.running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(
                    f"Usage rollover sweep failed in worker {self.worker_id}: {e}",
                    exc_info=True,
                )

            try:
                await asyncio.wait_for(
                    self._stopped.wait(), timeout=self.interval_seconds
                )
            except asyncio.TimeoutError:
                continue

    async def stop(self):
        """Stop the worker after the current sweep."""
        self.running = False
        self._stopped.set()
        await self.lock_provider.disconnect()
        logger.info(f"Stopping worker {self.worker_id}")

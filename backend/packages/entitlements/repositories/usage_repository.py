"""
Repository for the monthly usage ledger.
"""

from datetime import date
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import trace_span
from common.db.base import utcnow
from common.db.statements import insert_if_absent
from common.repositories.base import BaseRepository
from packages.entitlements.models.database.usage import UsageLedgerEntity
from packages.entitlements.models.domain.enums import UsageFeature
from packages.entitlements.models.domain.plans import UNLIMITED
from packages.entitlements.models.domain.usage import UsageLedgerEntry


class UsageRepository(BaseRepository[UsageLedgerEntity, UsageLedgerEntry]):
    """Repository for per-user, per-month feature counters."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(UsageLedgerEntity, UsageLedgerEntry, db_session)

    @trace_span
    async def ensure_period(self, user_id: str, period: date) -> bool:
        """Create the zeroed (user, period) row if absent."""
        async with self._get_session() as session:
            return await insert_if_absent(
                session,
                UsageLedgerEntity.__table__,
                {"user_id": user_id, "period": period, "updated_at": utcnow()},
                ["user_id", "period"],
            )

    @trace_span
    async def get_entry(self, user_id: str, period: date) -> Optional[UsageLedgerEntry]:
        async with self._get_session() as session:
            result = await session.execute(
                select(UsageLedgerEntity)
                .where(
                    UsageLedgerEntity.user_id == user_id,
                    UsageLedgerEntity.period == period,
                )
                .execution_options(populate_existing=True)
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def increment_if_below_limit(
        self,
        user_id: str,
        period: date,
        feature: UsageFeature,
        quantity: int,
        limit: int,
    ) -> bool:
        """
        Atomically add ``quantity`` to the feature counter.

        The ceiling is part of the UPDATE predicate (``counter + qty <=
        limit``), so two concurrent callers can never both pass it. Returns
        False when the row is missing or the ceiling would be crossed.
        """
        column = getattr(UsageLedgerEntity, feature.value)
        stmt = update(UsageLedgerEntity).where(
            UsageLedgerEntity.user_id == user_id,
            UsageLedgerEntity.period == period,
        )
        if limit != UNLIMITED:
            stmt = stmt.where(column + quantity <= limit)

        async with self._get_session() as session:
            result = await session.execute(
                stmt.values({feature.value: column + quantity, "updated_at": utcnow()})
                .execution_options(synchronize_session=False)
            )
            return (result.rowcount or 0) > 0

    @trace_span
    async def list_stale(self, current_period: date, limit: int = 500) -> list[UsageLedgerEntry]:
        """Unarchived rows whose period precedes ``current_period``."""
        async with self._get_session() as session:
            result = await session.execute(
                select(UsageLedgerEntity)
                .where(
                    UsageLedgerEntity.period < current_period,
                    UsageLedgerEntity.archived_at.is_(None),
                )
                .order_by(UsageLedgerEntity.period.asc(), UsageLedgerEntity.id.asc())
                .limit(limit)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def mark_archived(self, entry_id: int) -> bool:
        """Stamp a row archived. False if another sweep got there first."""
        async with self._get_session() as session:
            result = await session.execute(
                update(UsageLedgerEntity)
                .where(
                    UsageLedgerEntity.id == entry_id,
                    UsageLedgerEntity.archived_at.is_(None),
                )
                .values(archived_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return (result.rowcount or 0) > 0

    @trace_span
    async def list_by_user(self, user_id: str, limit: int = 12) -> list[UsageLedgerEntry]:
        """Most recent periods first."""
        async with self._get_session() as session:
            result = await session.execute(
                select(UsageLedgerEntity)
                .where(UsageLedgerEntity.user_id == user_id)
                .order_by(UsageLedgerEntity.period.desc())
                .limit(limit)
                .execution_options(populate_existing=True)
            )
            return self._entities_to_domain(result.scalars().all())

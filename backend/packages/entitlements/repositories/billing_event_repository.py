"""
Repository for the billing event log.
"""

from datetime import datetime, timedelta
from typing import Any, Optional

from sqlalchemy import and_, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import trace_span
from common.db.base import utcnow
from common.db.statements import insert_if_absent
from common.repositories.base import BaseRepository
from packages.entitlements.models.database.billing_event import BillingEventEntity
from packages.entitlements.models.domain.billing_event import BillingEvent
from packages.entitlements.models.domain.enums import EventOutcome


class BillingEventRepository(BaseRepository[BillingEventEntity, BillingEvent]):
    """Append-only, idempotent store of inbound billing events."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(BillingEventEntity, BillingEvent, db_session)

    @trace_span
    async def get_by_event_id(self, event_id: str) -> Optional[BillingEvent]:
        async with self._get_session() as session:
            result = await session.execute(
                select(BillingEventEntity)
                .where(BillingEventEntity.event_id == event_id)
                .execution_options(populate_existing=True)
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def record_received(
        self, event_id: str, event_type: str, raw_payload: dict[str, Any]
    ) -> BillingEvent:
        """Insert the event unless its ID is already logged; return the stored row."""
        async with self._get_session() as session:
            await insert_if_absent(
                session,
                BillingEventEntity.__table__,
                {
                    "event_id": event_id,
                    "event_type": event_type,
                    "received_at": utcnow(),
                    "processed": False,
                    "raw_payload": raw_payload,
                },
                ["event_id"],
            )
        return await self.get_by_event_id(event_id)

    @trace_span
    async def claim(self, event_id: str, lease: timedelta) -> bool:
        """
        Take the processing lease on an unprocessed event.

        Only one concurrent delivery of the same event wins; a lease older
        than ``lease`` is considered abandoned and can be taken over.
        """
        now = utcnow()
        async with self._get_session() as session:
            result = await session.execute(
                update(BillingEventEntity)
                .where(
                    BillingEventEntity.event_id == event_id,
                    BillingEventEntity.processed.is_(False),
                    or_(
                        BillingEventEntity.claimed_at.is_(None),
                        BillingEventEntity.claimed_at < now - lease,
                    ),
                )
                .values(claimed_at=now)
                .execution_options(synchronize_session=False)
            )
            return (result.rowcount or 0) > 0

    @trace_span
    async def mark_processed(
        self,
        event_id: str,
        outcome: EventOutcome,
        user_id: Optional[str] = None,
        error_message: Optional[str] = None,
    ) -> None:
        async with self._get_session() as session:
            await session.execute(
                update(BillingEventEntity)
                .where(BillingEventEntity.event_id == event_id)
                .values(
                    processed=True,
                    processed_at=utcnow(),
                    outcome=outcome.value,
                    user_id=user_id,
                    error_message=error_message,
                )
                .execution_options(synchronize_session=False)
            )

    @trace_span
    async def list_unprocessed(
        self, older_than: datetime, limit: int = 100
    ) -> list[BillingEvent]:
        """Events received before ``older_than`` that never finished processing."""
        async with self._get_session() as session:
            result = await session.execute(
                select(BillingEventEntity)
                .where(
                    and_(
                        BillingEventEntity.processed.is_(False),
                        BillingEventEntity.received_at < older_than,
                    )
                )
                .order_by(BillingEventEntity.received_at.asc())
                .limit(limit)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def list_failed(self, limit: int = 100) -> list[BillingEvent]:
        """Processed events whose handler failed or whose user was not found."""
        async with self._get_session() as session:
            result = await session.execute(
                select(BillingEventEntity)
                .where(
                    BillingEventEntity.outcome.in_(
                        [EventOutcome.FAILED.value, EventOutcome.ORPHANED.value]
                    )
                )
                .order_by(BillingEventEntity.received_at.desc())
                .limit(limit)
            )
            return self._entities_to_domain(result.scalars().all())

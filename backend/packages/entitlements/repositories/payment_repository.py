"""
Repository for payment history.
"""

from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import trace_span
from common.db.statements import insert_if_absent
from common.repositories.base import BaseRepository
from packages.entitlements.models.database.payment import PaymentEntity
from packages.entitlements.models.domain.enums import PaymentStatus
from packages.entitlements.models.domain.payment import (
    PaymentCreateModel,
    PaymentRecord,
)


class PaymentRepository(BaseRepository[PaymentEntity, PaymentRecord]):
    """Repository for payment rows keyed by provider payment intent."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(PaymentEntity, PaymentRecord, db_session)

    @trace_span
    async def record_payment(self, payment: PaymentCreateModel) -> bool:
        """
        Insert the payment unless its payment intent is already recorded.

        A success arriving for an intent previously recorded as failed (a
        retried charge) flips that row to succeeded instead of adding one.
        Returns True when a new row was inserted.
        """
        values = payment.model_dump()
        values["status"] = payment.status.value
        async with self._get_session() as session:
            inserted = await insert_if_absent(
                session,
                PaymentEntity.__table__,
                values,
                ["provider_payment_intent_id"],
            )
            if not inserted and payment.status == PaymentStatus.SUCCEEDED:
                await session.execute(
                    update(PaymentEntity)
                    .where(
                        PaymentEntity.provider_payment_intent_id
                        == payment.provider_payment_intent_id,
                        PaymentEntity.status == PaymentStatus.FAILED.value,
                    )
                    .values(
                        status=PaymentStatus.SUCCEEDED.value,
                        amount=payment.amount,
                        paid_at=payment.paid_at,
                        invoice_url=payment.invoice_url,
                        receipt_url=payment.receipt_url,
                    )
                    .execution_options(synchronize_session=False)
                )
            return inserted

    @trace_span
    async def get_by_payment_intent_id(
        self, payment_intent_id: str
    ) -> Optional[PaymentRecord]:
        async with self._get_session() as session:
            result = await session.execute(
                select(PaymentEntity)
                .where(PaymentEntity.provider_payment_intent_id == payment_intent_id)
                .execution_options(populate_existing=True)
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def list_by_user(self, user_id: str, limit: int = 20) -> list[PaymentRecord]:
        async with self._get_session() as session:
            result = await session.execute(
                select(PaymentEntity)
                .where(PaymentEntity.user_id == user_id)
                .order_by(PaymentEntity.created_at.desc())
                .limit(limit)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def count_for_user(self, user_id: str) -> int:
        async with self._get_session() as session:
            result = await session.execute(
                select(func.count(PaymentEntity.id)).where(
                    PaymentEntity.user_id == user_id
                )
            )
            return result.scalar_one() or 0

"""
Repository for the relational subscription row.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import trace_span
from common.db.statements import insert_if_absent
from common.repositories.base import BaseRepository
from packages.entitlements.models.database.subscription import UserSubscriptionEntity
from packages.entitlements.models.domain.subscription import (
    SubscriptionRecord,
    SubscriptionState,
)


class SubscriptionRepository(
    BaseRepository[UserSubscriptionEntity, SubscriptionRecord]
):
    """Repository for managing user subscription rows."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(UserSubscriptionEntity, SubscriptionRecord, db_session)

    async def _get_one(self, *criteria) -> Optional[SubscriptionRecord]:
        async with self._get_session() as session:
            result = await session.execute(
                select(UserSubscriptionEntity)
                .where(*criteria)
                .order_by(UserSubscriptionEntity.updated_at.desc())
                .limit(1)
                .execution_options(populate_existing=True)
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_by_user_id(self, user_id: str) -> Optional[SubscriptionRecord]:
        return await self._get_one(UserSubscriptionEntity.user_id == user_id)

    @trace_span
    async def get_by_customer_id(
        self, customer_id: str
    ) -> Optional[SubscriptionRecord]:
        return await self._get_one(
            UserSubscriptionEntity.provider_customer_id == customer_id
        )

    @trace_span
    async def get_by_subscription_id(
        self, subscription_id: str
    ) -> Optional[SubscriptionRecord]:
        return await self._get_one(
            UserSubscriptionEntity.provider_subscription_id == subscription_id
        )

    @trace_span
    async def create_if_absent(self, user_id: str, state: SubscriptionState) -> bool:
        """Insert the user's row unless one exists. Returns True when inserted."""
        values = _state_values(state)
        values["user_id"] = user_id
        async with self._get_session() as session:
            return await insert_if_absent(
                session, UserSubscriptionEntity.__table__, values, ["user_id"]
            )

    @trace_span
    async def write_state(
        self,
        user_id: str,
        state: SubscriptionState,
        version: Optional[datetime],
        only_if_not_older: bool = True,
    ) -> bool:
        """
        Overwrite the row with ``state`` and stamp it with ``version``.

        With ``only_if_not_older`` the update is conditional on the stored
        version not being newer than ``version``, evaluated in the UPDATE
        itself. Returns False when nothing was written.
        """
        values = _state_values(state)
        values["provider_updated_at"] = version

        stmt = update(UserSubscriptionEntity).where(
            UserSubscriptionEntity.user_id == user_id
        )
        if only_if_not_older and version is not None:
            stmt = stmt.where(
                or_(
                    UserSubscriptionEntity.provider_updated_at.is_(None),
                    UserSubscriptionEntity.provider_updated_at <= version,
                )
            )

        async with self._get_session() as session:
            result = await session.execute(
                stmt.values(**values).execution_options(synchronize_session=False)
            )
            return (result.rowcount or 0) > 0

    @trace_span
    async def set_customer_id(self, user_id: str, customer_id: str) -> None:
        async with self._get_session() as session:
            await session.execute(
                update(UserSubscriptionEntity)
                .where(UserSubscriptionEntity.user_id == user_id)
                .values(provider_customer_id=customer_id)
                .execution_options(synchronize_session=False)
            )


def _state_values(state: SubscriptionState) -> dict:
    return {
        "plan_tier": state.plan_tier.value,
        "status": state.status.value,
        "billing_cycle": state.billing_cycle.value if state.billing_cycle else None,
        "provider_customer_id": state.provider_customer_id,
        "provider_subscription_id": state.provider_subscription_id,
        "current_period_start": state.current_period_start,
        "current_period_end": state.current_period_end,
        "cancel_at_period_end": state.cancel_at_period_end,
        "trial_end": state.trial_end,
        "canceled_at": state.canceled_at,
    }

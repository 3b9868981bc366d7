"""
Repository for the user profile document.
"""

from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import trace_span
from common.db.statements import insert_if_absent
from common.repositories.base import BaseRepository
from packages.entitlements.models.database.profile import UserProfileEntity
from packages.entitlements.models.domain.profile import UserProfile


class ProfileRepository(BaseRepository[UserProfileEntity, UserProfile]):
    """Repository for the document copy of subscription and usage state."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(UserProfileEntity, UserProfile, db_session)

    @trace_span
    async def get_by_user_id(self, user_id: str) -> Optional[UserProfile]:
        async with self._get_session() as session:
            result = await session.execute(
                select(UserProfileEntity)
                .where(UserProfileEntity.user_id == user_id)
                .execution_options(populate_existing=True)
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def ensure(self, user_id: str) -> bool:
        async with self._get_session() as session:
            return await insert_if_absent(
                session,
                UserProfileEntity.__table__,
                {
                    "user_id": user_id,
                    "subscription": {},
                    "usage": {},
                    "usage_history": [],
                },
                ["user_id"],
            )

    async def _set_column(self, user_id: str, **values: Any) -> bool:
        await self.ensure(user_id)
        async with self._get_session() as session:
            result = await session.execute(
                update(UserProfileEntity)
                .where(UserProfileEntity.user_id == user_id)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            return (result.rowcount or 0) > 0

    @trace_span
    async def save_subscription(self, user_id: str, document: dict[str, Any]) -> bool:
        return await self._set_column(user_id, subscription=document)

    @trace_span
    async def save_usage(self, user_id: str, usage: dict[str, Any]) -> bool:
        return await self._set_column(user_id, usage=usage)

    @trace_span
    async def merge_usage(self, user_id: str, changes: dict[str, Any]) -> bool:
        """Merge ``changes`` into the usage display cache."""
        profile = await self.get_by_user_id(user_id)
        usage = dict(profile.usage) if profile else {}
        usage.update(changes)
        return await self._set_column(user_id, usage=usage)

    @trace_span
    async def append_usage_history(
        self, user_id: str, entry: dict[str, Any], retention: int
    ) -> list[dict[str, Any]]:
        """
        Add an archived period to the history, newest first.

        An entry for the same ``period`` is replaced rather than duplicated;
        entries beyond ``retention`` are evicted oldest first.
        """
        profile = await self.get_by_user_id(user_id)
        history = [
            item
            for item in (profile.usage_history if profile else [])
            if item.get("period") != entry.get("period")
        ]
        history.append(entry)
        history.sort(key=lambda item: item.get("period") or "", reverse=True)
        history = history[:retention]
        await self._set_column(user_id, usage_history=history)
        return history

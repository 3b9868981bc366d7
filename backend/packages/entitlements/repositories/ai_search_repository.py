"""
Repository for AI job search resources.
"""

from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import trace_span
from common.db.base import utcnow
from common.repositories.base import BaseRepository
from packages.entitlements.models.database.ai_search import AISearchEntity
from packages.entitlements.models.domain.discovery import (
    AISearch,
    AISearchCreateModel,
)
from packages.entitlements.models.domain.enums import AISearchStatus


class AISearchRepository(BaseRepository[AISearchEntity, AISearch]):
    """Lifecycle store for AI searches; slot usage is counted from here."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(AISearchEntity, AISearch, db_session)

    @trace_span
    async def count_active(self, user_id: str) -> int:
        """Count searches occupying a slot (running or paused)."""
        active = [status.value for status in AISearchStatus.active_states()]
        async with self._get_session() as session:
            result = await session.execute(
                select(func.count(AISearchEntity.id)).where(
                    AISearchEntity.user_id == user_id,
                    AISearchEntity.status.in_(active),
                )
            )
            return result.scalar_one() or 0

    @trace_span
    async def create_search(
        self, user_id: str, name: str, status: AISearchStatus = AISearchStatus.RUNNING
    ) -> AISearch:
        return await self.create(
            AISearchCreateModel(user_id=user_id, name=name, status=status.value)
        )

    @trace_span
    async def set_status(self, search_id: int, status: AISearchStatus) -> bool:
        async with self._get_session() as session:
            result = await session.execute(
                update(AISearchEntity)
                .where(AISearchEntity.id == search_id)
                .values(status=status.value, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return (result.rowcount or 0) > 0

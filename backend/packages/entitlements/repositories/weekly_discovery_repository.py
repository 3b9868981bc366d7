"""
Repository for weekly AI discovery windows and their search runs.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import trace_span
from common.db.base import utcnow
from common.db.statements import insert_if_absent
from common.repositories.base import BaseRepository
from packages.entitlements.models.database.discovery import (
    DiscoverySearchRunEntity,
    WeeklyDiscoveryWindowEntity,
)
from packages.entitlements.models.domain.discovery import (
    SearchRun,
    SearchRunInput,
    WeeklyWindow,
    WeekWindow,
)


class WeeklyDiscoveryRepository(
    BaseRepository[WeeklyDiscoveryWindowEntity, WeeklyWindow]
):
    """Repository for weekly discovery counters."""

    def __init__(self, db_session: Optional[AsyncSession] = None):
        super().__init__(WeeklyDiscoveryWindowEntity, WeeklyWindow, db_session)

    @trace_span
    async def get_window(
        self, user_id: str, week_start: datetime
    ) -> Optional[WeeklyWindow]:
        async with self._get_session() as session:
            result = await session.execute(
                select(WeeklyDiscoveryWindowEntity)
                .where(
                    WeeklyDiscoveryWindowEntity.user_id == user_id,
                    WeeklyDiscoveryWindowEntity.week_start == week_start,
                )
                .execution_options(populate_existing=True)
            )
            entity = result.scalar_one_or_none()
            return self._entity_to_domain(entity) if entity else None

    @trace_span
    async def get_or_create_window(
        self, user_id: str, window: WeekWindow
    ) -> WeeklyWindow:
        """Open the window lazily with a zero count."""
        async with self._get_session() as session:
            await insert_if_absent(
                session,
                WeeklyDiscoveryWindowEntity.__table__,
                {
                    "user_id": user_id,
                    "week_start": window.week_start,
                    "week_end": window.week_end,
                    "week_year": window.week_year,
                    "week_number": window.week_number,
                    "jobs_found_this_week": 0,
                },
                ["user_id", "week_start"],
            )
        return await self.get_window(user_id, window.week_start)

    @trace_span
    async def get_first_window_start(self, user_id: str) -> Optional[datetime]:
        async with self._get_session() as session:
            result = await session.execute(
                select(WeeklyDiscoveryWindowEntity.week_start)
                .where(WeeklyDiscoveryWindowEntity.user_id == user_id)
                .order_by(WeeklyDiscoveryWindowEntity.week_start.asc())
                .limit(1)
            )
            return result.scalar_one_or_none()

    @trace_span
    async def increment_while_below(self, window_id: int, jobs: int, limit: int) -> bool:
        """
        ``jobs_found += jobs`` if the window is still below ``limit``.

        The whole burst lands when admitted, so the count may pass the limit.
        """
        column = WeeklyDiscoveryWindowEntity.jobs_found_this_week
        async with self._get_session() as session:
            result = await session.execute(
                update(WeeklyDiscoveryWindowEntity)
                .where(WeeklyDiscoveryWindowEntity.id == window_id, column < limit)
                .values(jobs_found_this_week=column + jobs, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return (result.rowcount or 0) > 0

    @trace_span
    async def increment(self, window_id: int, jobs: int) -> None:
        column = WeeklyDiscoveryWindowEntity.jobs_found_this_week
        async with self._get_session() as session:
            await session.execute(
                update(WeeklyDiscoveryWindowEntity)
                .where(WeeklyDiscoveryWindowEntity.id == window_id)
                .values(jobs_found_this_week=column + jobs, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )

    @trace_span
    async def compare_and_set(self, window_id: int, expected: int, new: int) -> bool:
        """Set the count to ``new`` only if it still equals ``expected``."""
        column = WeeklyDiscoveryWindowEntity.jobs_found_this_week
        async with self._get_session() as session:
            result = await session.execute(
                update(WeeklyDiscoveryWindowEntity)
                .where(WeeklyDiscoveryWindowEntity.id == window_id, column == expected)
                .values(jobs_found_this_week=new, updated_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return (result.rowcount or 0) > 0

    @trace_span
    async def get_count(self, window_id: int) -> int:
        async with self._get_session() as session:
            result = await session.execute(
                select(WeeklyDiscoveryWindowEntity.jobs_found_this_week).where(
                    WeeklyDiscoveryWindowEntity.id == window_id
                )
            )
            return result.scalar_one_or_none() or 0

    @trace_span
    async def add_search_run(
        self,
        window_id: int,
        user_id: str,
        run: SearchRunInput,
        jobs_found: int,
        run_date: datetime,
    ) -> SearchRun:
        entity = DiscoverySearchRunEntity(
            window_id=window_id,
            user_id=user_id,
            search_id=run.search_id,
            search_name=run.search_name,
            resume_name=run.resume_name,
            run_date=run_date,
            jobs_found=jobs_found,
        )
        async with self._get_session() as session:
            session.add(entity)
            await session.flush()
            await session.refresh(entity)
            return SearchRun.model_validate(entity)

    @trace_span
    async def mark_search_deleted(self, user_id: str, search_id: str) -> int:
        async with self._get_session() as session:
            result = await session.execute(
                update(DiscoverySearchRunEntity)
                .where(
                    DiscoverySearchRunEntity.user_id == user_id,
                    DiscoverySearchRunEntity.search_id == search_id,
                    DiscoverySearchRunEntity.search_deleted.is_(False),
                )
                .values(search_deleted=True, deleted_at=utcnow())
                .execution_options(synchronize_session=False)
            )
            return result.rowcount or 0

    @trace_span
    async def list_windows(self, user_id: str, limit: int = 12) -> list[WeeklyWindow]:
        """Most recent windows first."""
        async with self._get_session() as session:
            result = await session.execute(
                select(WeeklyDiscoveryWindowEntity)
                .where(WeeklyDiscoveryWindowEntity.user_id == user_id)
                .order_by(WeeklyDiscoveryWindowEntity.week_start.desc())
                .limit(limit)
                .execution_options(populate_existing=True)
            )
            return self._entities_to_domain(result.scalars().all())

    @trace_span
    async def list_runs_for_windows(self, window_ids: list[int]) -> list[SearchRun]:
        if not window_ids:
            return []
        async with self._get_session() as session:
            result = await session.execute(
                select(DiscoverySearchRunEntity)
                .where(DiscoverySearchRunEntity.window_id.in_(window_ids))
                .order_by(DiscoverySearchRunEntity.run_date.desc())
                .execution_options(populate_existing=True)
            )
            return [SearchRun.model_validate(run) for run in result.scalars().all()]

    @trace_span
    async def list_recent_runs(self, user_id: str, limit: int = 10) -> list[SearchRun]:
        async with self._get_session() as session:
            result = await session.execute(
                select(DiscoverySearchRunEntity)
                .where(DiscoverySearchRunEntity.user_id == user_id)
                .order_by(
                    DiscoverySearchRunEntity.run_date.desc(),
                    DiscoverySearchRunEntity.id.desc(),
                )
                .limit(limit)
                .execution_options(populate_existing=True)
            )
            return [SearchRun.model_validate(run) for run in result.scalars().all()]

    @trace_span
    async def get_totals(self, user_id: str) -> tuple[int, int]:
        """(total jobs found, number of windows) across all weeks."""
        async with self._get_session() as session:
            result = await session.execute(
                select(
                    func.coalesce(
                        func.sum(WeeklyDiscoveryWindowEntity.jobs_found_this_week), 0
                    ),
                    func.count(WeeklyDiscoveryWindowEntity.id),
                ).where(WeeklyDiscoveryWindowEntity.user_id == user_id)
            )
            total, weeks = result.one()
            return int(total or 0), int(weeks or 0)

"""
Service for the weekly AI job discovery allowance.

Independent of the monthly ledger: it counts jobs surfaced by AI discovery
inside 7-day windows. Window boundaries come from ``WeeklyWindowPolicy``;
what happens to a burst that crosses the limit comes from
``WeeklyOvershootPolicy``.
"""

from datetime import datetime, time, timedelta, timezone
from typing import Optional

from common.core.config import settings
from common.core.constants import WeeklyOvershootPolicy, WeeklyWindowPolicy
from common.core.exceptions import ValidationError
from common.core.otel_axiom_exporter import get_logger, trace_span
from common.db.base import utcnow
from common.db.context import readonly
from packages.entitlements.models.domain.discovery import (
    SearchRunInput,
    WeeklyHistoryEntry,
    WeeklyRecordResult,
    WeeklyStats,
    WeeklySummary,
    WeeklyWindow,
    WeekWindow,
)
from packages.entitlements.models.domain.plans import is_unlimited
from packages.entitlements.repositories.weekly_discovery_repository import (
    WeeklyDiscoveryRepository,
)

logger = get_logger(__name__)

WEEK = timedelta(days=7)
MAX_CAS_ATTEMPTS = 5


def _utc(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def _utc_midnight(moment: datetime) -> datetime:
    return datetime.combine(_utc(moment).date(), time.min, tzinfo=timezone.utc)


def _window(start: datetime) -> WeekWindow:
    iso = start.isocalendar()
    return WeekWindow(
        week_start=start,
        week_end=start + WEEK,
        week_year=iso[0],
        week_number=iso[1],
    )


def calendar_week_window(moment: datetime) -> WeekWindow:
    """The Monday 00:00 UTC week containing ``moment``."""
    midnight = _utc_midnight(moment)
    return _window(midnight - timedelta(days=midnight.weekday()))


def rolling_week_window(moment: datetime, anchor: datetime) -> WeekWindow:
    """The 7-day tile, counted from ``anchor``, that contains ``moment``."""
    anchor = _utc(anchor)
    tiles = (_utc(moment) - anchor) // WEEK
    return _window(anchor + tiles * WEEK)


def compute_week_window(
    moment: datetime, policy: WeeklyWindowPolicy, anchor: Optional[datetime] = None
) -> WeekWindow:
    if policy == WeeklyWindowPolicy.ROLLING_FROM_FIRST_USE:
        return rolling_week_window(moment, anchor or _utc_midnight(moment))
    return calendar_week_window(moment)


def build_weekly_stats(window: WeeklyWindow, weekly_limit: int) -> WeeklyStats:
    jobs = window.jobs_found_this_week
    if is_unlimited(weekly_limit):
        remaining, reached = -1, False
    else:
        remaining = max(0, weekly_limit - jobs)
        reached = jobs >= weekly_limit
    return WeeklyStats(
        jobs_found_this_week=jobs,
        week_start=window.week_start,
        week_end=window.week_end,
        week_number=window.week_number,
        week_year=window.week_year,
        weekly_limit=weekly_limit,
        remaining_this_week=remaining,
        is_limit_reached=reached,
    )


class WeeklyDiscoveryService:
    """Weekly counter of jobs surfaced by AI discovery."""

    def __init__(
        self,
        window_policy: Optional[WeeklyWindowPolicy] = None,
        overshoot_policy: Optional[WeeklyOvershootPolicy] = None,
    ):
        self.discovery_repo = WeeklyDiscoveryRepository()
        self.window_policy = window_policy or settings.weekly_window_policy
        self.overshoot_policy = overshoot_policy or settings.weekly_overshoot_policy

    async def _current_window(self, user_id: str, now: Optional[datetime]) -> WeeklyWindow:
        now = now or utcnow()
        anchor = None
        if self.window_policy == WeeklyWindowPolicy.ROLLING_FROM_FIRST_USE:
            anchor = await self.discovery_repo.get_first_window_start(user_id)
        window = compute_week_window(now, self.window_policy, anchor)
        return await self.discovery_repo.get_or_create_window(user_id, window)

    @trace_span
    async def get_current_weekly_stats(
        self, user_id: str, weekly_limit: int, now: Optional[datetime] = None
    ) -> WeeklyStats:
        """Stats for the window containing ``now``, opening it if needed."""
        window = await self._current_window(user_id, now)
        return build_weekly_stats(window, weekly_limit)

    async def _clamp_to_limit(self, window_id: int, jobs: int, limit: int) -> int:
        """Raise the count towards ``limit`` by at most ``jobs``; returns jobs added."""
        for _attempt in range(MAX_CAS_ATTEMPTS):
            current = await self.discovery_repo.get_count(window_id)
            target = min(current + jobs, limit)
            if target <= current:
                return 0
            if await self.discovery_repo.compare_and_set(window_id, current, target):
                return target - current
        logger.warning(
            f"Weekly discovery update contended on window {window_id}; burst dropped",
            extra={"window_id": window_id, "jobs": jobs},
        )
        return 0

    @trace_span
    async def record_job_found(
        self,
        user_id: str,
        weekly_limit: int,
        jobs_found: int = 1,
        search_run: Optional[SearchRunInput] = None,
        now: Optional[datetime] = None,
    ) -> WeeklyRecordResult:
        """
        Count ``jobs_found`` discovered jobs against the current window.

        Under ``allow_burst`` the whole burst lands if the window was below
        the limit; under ``hard_stop`` it is clamped at the limit and the
        excess reported as ``dropped``.
        """
        if jobs_found < 1:
            raise ValidationError("jobs_found must be at least 1")

        now = now or utcnow()
        window = await self._current_window(user_id, now)

        if is_unlimited(weekly_limit):
            await self.discovery_repo.increment(window.id, jobs_found)
            added = jobs_found
        elif weekly_limit <= 0:
            added = 0
        elif self.overshoot_policy == WeeklyOvershootPolicy.ALLOW_BURST:
            admitted = await self.discovery_repo.increment_while_below(
                window.id, jobs_found, weekly_limit
            )
            added = jobs_found if admitted else 0
        else:
            added = await self._clamp_to_limit(window.id, jobs_found, weekly_limit)

        if search_run is not None:
            await self.discovery_repo.add_search_run(
                window.id, user_id, search_run, added, now
            )

        total = await self.discovery_repo.get_count(window.id)
        limit_reached = not is_unlimited(weekly_limit) and total >= weekly_limit
        dropped = jobs_found - added

        if dropped:
            logger.info(
                f"Weekly discovery limit reached for user {user_id}: "
                f"{dropped} of {jobs_found} jobs not counted",
                extra={
                    "user_id": user_id,
                    "weekly_limit": weekly_limit,
                    "jobs_found_this_week": total,
                    "policy": self.overshoot_policy.value,
                },
            )

        return WeeklyRecordResult(
            added=added,
            dropped=dropped,
            jobs_found_this_week=total,
            limit_reached=limit_reached,
        )

    @trace_span
    async def mark_search_deleted(self, user_id: str, search_id: str) -> int:
        """Flag a deleted search's runs. The weekly count is not given back."""
        updated = await self.discovery_repo.mark_search_deleted(user_id, search_id)
        logger.info(
            f"Marked {updated} discovery runs deleted for search {search_id}",
            extra={"user_id": user_id, "search_id": search_id},
        )
        return updated

    @trace_span
    @readonly
    async def get_weekly_history(self, user_id: str, limit: int = 12) -> list[WeeklyHistoryEntry]:
        windows = await self.discovery_repo.list_windows(user_id, limit=limit)
        runs = await self.discovery_repo.list_runs_for_windows(
            [window.id for window in windows]
        )
        return [
            WeeklyHistoryEntry(
                week_start=window.week_start,
                week_end=window.week_end,
                week_year=window.week_year,
                week_number=window.week_number,
                jobs_found=window.jobs_found_this_week,
                runs=[run for run in runs if run.window_id == window.id],
            )
            for window in windows
        ]

    @trace_span
    async def get_weekly_summary(
        self, user_id: str, weekly_limit: int, now: Optional[datetime] = None
    ) -> WeeklySummary:
        current = await self.get_current_weekly_stats(user_id, weekly_limit, now=now)
        total, weeks = await self.discovery_repo.get_totals(user_id)
        recent = await self.discovery_repo.list_recent_runs(user_id, limit=10)
        return WeeklySummary(
            current=current,
            total_jobs_found=total,
            weeks_tracked=weeks,
            average_per_week=round(total / weeks, 1) if weeks else 0.0,
            recent_runs=recent,
        )

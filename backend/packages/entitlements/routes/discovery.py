"""
AI discovery API routes.

Weekly discovery allowance and active search slots.
"""

from fastapi import APIRouter, Depends, Query

from packages.entitlements.dependencies import get_current_user_id
from packages.entitlements.models.domain.discovery import (
    SlotCheck,
    WeeklyHistoryEntry,
    WeeklyRecordResult,
    WeeklyStats,
    WeeklySummary,
)
from packages.entitlements.models.domain.plans import get_plan_limits
from packages.entitlements.models.schemas.billing import (
    RecordJobsRequest,
    ReleaseSlotRequest,
)
from packages.entitlements.services.slot_limiter_service import SlotLimiterService
from packages.entitlements.services.subscription_record_service import (
    SubscriptionRecordService,
)
from packages.entitlements.services.weekly_discovery_service import (
    WeeklyDiscoveryService,
)

router = APIRouter()


async def _weekly_limit(user_id: str) -> int:
    tier = await SubscriptionRecordService().get_effective_tier(user_id)
    return get_plan_limits(tier).weekly_discovery_limit


@router.get("/discovery/weekly", response_model=WeeklyStats)
async def get_weekly_stats(user_id: str = Depends(get_current_user_id)):
    discovery_service = WeeklyDiscoveryService()
    return await discovery_service.get_current_weekly_stats(
        user_id, await _weekly_limit(user_id)
    )


@router.post("/discovery/weekly/jobs", response_model=WeeklyRecordResult)
async def record_jobs_found(
    request: RecordJobsRequest,
    user_id: str = Depends(get_current_user_id),
):
    """Count jobs surfaced by a discovery run against this week's allowance."""
    discovery_service = WeeklyDiscoveryService()
    return await discovery_service.record_job_found(
        user_id,
        await _weekly_limit(user_id),
        jobs_found=request.jobs_found,
        search_run=request.search_run,
    )


@router.get("/discovery/weekly/history", response_model=list[WeeklyHistoryEntry])
async def get_weekly_history(
    limit: int = Query(default=12, ge=1, le=52),
    user_id: str = Depends(get_current_user_id),
):
    discovery_service = WeeklyDiscoveryService()
    return await discovery_service.get_weekly_history(user_id, limit=limit)


@router.get("/discovery/weekly/summary", response_model=WeeklySummary)
async def get_weekly_summary(user_id: str = Depends(get_current_user_id)):
    discovery_service = WeeklyDiscoveryService()
    return await discovery_service.get_weekly_summary(
        user_id, await _weekly_limit(user_id)
    )


@router.delete("/discovery/searches/{search_id}/runs")
async def mark_search_deleted(
    search_id: str, user_id: str = Depends(get_current_user_id)
) -> dict[str, int]:
    """Flag a deleted search's runs; jobs already counted this week stay counted."""
    discovery_service = WeeklyDiscoveryService()
    updated = await discovery_service.mark_search_deleted(user_id, search_id)
    return {"updated": updated}


@router.get("/discovery/slots", response_model=SlotCheck)
async def check_slot_availability(user_id: str = Depends(get_current_user_id)):
    slot_service = SlotLimiterService()
    return await slot_service.check_slot_availability(user_id)


@router.post("/discovery/slots/release", response_model=SlotCheck)
async def release_slot(
    request: ReleaseSlotRequest,
    user_id: str = Depends(get_current_user_id),
):
    slot_service = SlotLimiterService()
    return await slot_service.release_slot(user_id, request.search_id)

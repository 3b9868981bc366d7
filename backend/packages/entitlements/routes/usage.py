"""
Usage API routes.

Monthly quota checks, metering and history for the current user.
"""

from fastapi import APIRouter, Depends, Query

from packages.entitlements.dependencies import get_current_user_id
from packages.entitlements.models.domain.enums import UsageFeature
from packages.entitlements.models.domain.usage import (
    BulkTrackResult,
    LimitCheck,
    UsagePeriod,
    UsageSnapshot,
    UsageWarning,
)
from packages.entitlements.models.schemas.billing import (
    BulkTrackUsageRequest,
    TrackUsageRequest,
)
from packages.entitlements.services.usage_ledger_service import UsageLedgerService

router = APIRouter()


@router.get("/usage", response_model=UsageSnapshot)
async def get_usage(user_id: str = Depends(get_current_user_id)):
    """Current period counters with limits and percentages for every feature."""
    usage_service = UsageLedgerService()
    return await usage_service.get_usage_snapshot(user_id)


@router.get("/usage/check/{feature}", response_model=LimitCheck)
async def check_limit(
    feature: UsageFeature,
    quantity: int = Query(default=1, ge=1),
    user_id: str = Depends(get_current_user_id),
):
    """Check whether ``quantity`` more uses fit; never increments."""
    usage_service = UsageLedgerService()
    return await usage_service.check_limit(user_id, feature, quantity)


@router.post("/usage/track", response_model=UsageSnapshot)
async def track_usage(
    request: TrackUsageRequest,
    user_id: str = Depends(get_current_user_id),
):
    """
    Record usage of a metered feature.

    Returns 429 with the recommended plan when the quota would be exceeded.
    """
    usage_service = UsageLedgerService()
    return await usage_service.track(
        user_id, request.feature, request.quantity, request.metadata
    )


@router.post("/usage/track/bulk", response_model=BulkTrackResult)
async def bulk_track_usage(
    request: BulkTrackUsageRequest,
    user_id: str = Depends(get_current_user_id),
):
    usage_service = UsageLedgerService()
    return await usage_service.bulk_track(user_id, request.items)


@router.get("/usage/history", response_model=list[UsagePeriod])
async def get_usage_history(
    months: int = Query(default=12, ge=1, le=24),
    user_id: str = Depends(get_current_user_id),
):
    usage_service = UsageLedgerService()
    return await usage_service.get_usage_history(user_id, months=months)


@router.get("/usage/warnings", response_model=list[UsageWarning])
async def get_usage_warnings(user_id: str = Depends(get_current_user_id)):
    usage_service = UsageLedgerService()
    return await usage_service.get_usage_warnings(user_id)

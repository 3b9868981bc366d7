"""
Plans API routes.

Public endpoints for retrieving available subscription plans.
"""

from fastapi import APIRouter

from packages.entitlements.models.domain.enums import PlanTier
from packages.entitlements.models.domain.plans import PlanInfo, PlansResponse
from packages.entitlements.services.plan_catalog_service import PlanCatalogService

router = APIRouter()


@router.get("", response_model=PlansResponse)
async def get_plans():
    """
    Get all available subscription plans.

    Returns pricing, limits, and features for each tier.
    Prices are fetched from Stripe and cached for 1 hour.
    This endpoint is public (no auth required) for pricing pages.
    """
    plan_service = PlanCatalogService()
    return await plan_service.get_all_plans()


@router.get("/{plan_tier}", response_model=PlanInfo)
async def get_plan(plan_tier: PlanTier):
    plan_service = PlanCatalogService()
    return await plan_service.get_plan(plan_tier)

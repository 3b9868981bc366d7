"""
API schemas for billing operations.

Request and response models for billing endpoints.
"""

from typing import Any, Optional

from pydantic import BaseModel, Field, HttpUrl

from packages.entitlements.models.domain.discovery import SearchRunInput
from packages.entitlements.models.domain.enums import BillingCycle, PlanTier, UsageFeature
from packages.entitlements.models.domain.usage import TrackItem


# ============================================================================
# Checkout Schemas
# ============================================================================


class CheckoutSessionRequest(BaseModel):
    """Request to create a checkout session."""

    plan_tier: PlanTier
    billing_cycle: BillingCycle = BillingCycle.MONTHLY
    success_url: Optional[HttpUrl] = None
    cancel_url: Optional[HttpUrl] = None
    billing_email: Optional[str] = None
    name: Optional[str] = None


class CheckoutSessionResponse(BaseModel):
    """Response with checkout URL."""

    checkout_url: str = Field(..., description="Stripe checkout session URL")
    session_id: str


# ============================================================================
# Portal Schemas
# ============================================================================


class PortalSessionRequest(BaseModel):
    """Request to create a customer portal session."""

    return_url: Optional[HttpUrl] = None


class PortalSessionResponse(BaseModel):
    """Response with portal URL."""

    portal_url: str = Field(..., description="Stripe customer portal URL")


# ============================================================================
# Subscription Schemas
# ============================================================================


class ChangePlanRequest(BaseModel):
    plan_tier: PlanTier
    billing_cycle: BillingCycle = BillingCycle.MONTHLY


# ============================================================================
# Usage Schemas
# ============================================================================


class TrackUsageRequest(BaseModel):
    feature: UsageFeature
    quantity: int = Field(default=1, ge=1)
    metadata: Optional[dict[str, Any]] = None


class BulkTrackUsageRequest(BaseModel):
    items: list[TrackItem] = Field(..., min_length=1)


# ============================================================================
# Discovery Schemas
# ============================================================================


class RecordJobsRequest(BaseModel):
    """Jobs surfaced by one AI discovery run."""

    jobs_found: int = Field(default=1, ge=1)
    search_run: Optional[SearchRunInput] = None


class ReleaseSlotRequest(BaseModel):
    search_id: int

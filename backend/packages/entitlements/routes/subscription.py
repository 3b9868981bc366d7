"""
Subscription API routes.

Snapshot, sync and the user actions that reach the billing provider.
"""

from fastapi import APIRouter, Depends, Query

from packages.entitlements.dependencies import get_current_user_id
from packages.entitlements.models.domain.payment import PaymentRecord
from packages.entitlements.models.domain.provider import ProviderInvoice
from packages.entitlements.models.domain.snapshot import SubscriptionSnapshot
from packages.entitlements.models.domain.subscription import SubscriptionRecord
from packages.entitlements.models.schemas.billing import (
    ChangePlanRequest,
    CheckoutSessionRequest,
    CheckoutSessionResponse,
    PortalSessionRequest,
    PortalSessionResponse,
)
from packages.entitlements.services.billing_service import BillingService
from packages.entitlements.services.reconciliation_service import (
    ReconciliationService,
)

router = APIRouter()


# ============================================================================
# Subscription Status
# ============================================================================


@router.get("/subscription", response_model=SubscriptionSnapshot)
async def get_current_subscription(user_id: str = Depends(get_current_user_id)):
    """
    Get the user's subscription with plan limits, usage and discovery stats.

    Paid subscriptions are refreshed from Stripe when reachable; otherwise
    the stored subscription is returned.
    """
    reconciliation_service = ReconciliationService()
    return await reconciliation_service.get_current_subscription(user_id)


@router.post("/subscription/sync", response_model=SubscriptionSnapshot)
async def sync_subscription(user_id: str = Depends(get_current_user_id)):
    """
    Overwrite the stored subscription with Stripe's current state.

    Used after checkout returns and to recover from missed webhooks.
    """
    reconciliation_service = ReconciliationService()
    return await reconciliation_service.sync_from_provider(user_id)


# ============================================================================
# Checkout & Portal
# ============================================================================


@router.post("/checkout", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    request: CheckoutSessionRequest,
    user_id: str = Depends(get_current_user_id),
):
    billing_service = BillingService()
    session = await billing_service.create_checkout_session(
        user_id,
        request.plan_tier,
        billing_cycle=request.billing_cycle,
        email=request.billing_email,
        name=request.name,
        success_url=str(request.success_url) if request.success_url else None,
        cancel_url=str(request.cancel_url) if request.cancel_url else None,
    )
    return CheckoutSessionResponse(checkout_url=session.url, session_id=session.id)


@router.post("/portal", response_model=PortalSessionResponse)
async def create_portal_session(
    request: PortalSessionRequest,
    user_id: str = Depends(get_current_user_id),
):
    """
    Create a Stripe customer portal session.

    Allows customers to manage payment methods, view invoices, cancel subscription.
    """
    billing_service = BillingService()
    session = await billing_service.create_portal_session(
        user_id, return_url=str(request.return_url) if request.return_url else None
    )
    return PortalSessionResponse(portal_url=session.url)


# ============================================================================
# Plan Management
# ============================================================================


@router.post("/subscription/cancel", response_model=SubscriptionRecord)
async def cancel_subscription(user_id: str = Depends(get_current_user_id)):
    """Cancel at the end of the current billing period."""
    billing_service = BillingService()
    return await billing_service.cancel_subscription(user_id)


@router.post("/subscription/resume", response_model=SubscriptionRecord)
async def resume_subscription(user_id: str = Depends(get_current_user_id)):
    billing_service = BillingService()
    return await billing_service.resume_subscription(user_id)


@router.post("/subscription/change-plan", response_model=SubscriptionRecord)
async def change_plan(
    request: ChangePlanRequest,
    user_id: str = Depends(get_current_user_id),
):
    billing_service = BillingService()
    return await billing_service.change_plan(
        user_id, request.plan_tier, request.billing_cycle
    )


# ============================================================================
# Billing History
# ============================================================================


@router.get("/invoices", response_model=list[ProviderInvoice])
async def list_invoices(
    limit: int = Query(default=10, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
):
    billing_service = BillingService()
    return await billing_service.list_invoices(user_id, limit=limit)


@router.get("/payments", response_model=list[PaymentRecord])
async def get_payment_history(
    limit: int = Query(default=20, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
):
    billing_service = BillingService()
    return await billing_service.get_payment_history(user_id, limit=limit)

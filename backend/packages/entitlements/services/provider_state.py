"""
Mapping of provider subscription objects onto our subscription state.
"""

from datetime import datetime
from typing import Optional

from packages.entitlements.models.domain.enums import (
    BillingCycle,
    PlanTier,
    SubscriptionStatus,
)
from packages.entitlements.models.domain.provider import ProviderSubscription
from packages.entitlements.models.domain.stripe_webhooks import StripeSubscriptionStatus
from packages.entitlements.models.domain.subscription import SubscriptionState


def map_provider_status(provider_status: str) -> SubscriptionStatus:
    """Map Stripe subscription status to our subscription status."""
    mapping = {
        StripeSubscriptionStatus.ACTIVE.value: SubscriptionStatus.ACTIVE,
        StripeSubscriptionStatus.TRIALING.value: SubscriptionStatus.TRIALING,
        StripeSubscriptionStatus.PAST_DUE.value: SubscriptionStatus.PAST_DUE,
        StripeSubscriptionStatus.UNPAID.value: SubscriptionStatus.PAST_DUE,
        StripeSubscriptionStatus.INCOMPLETE.value: SubscriptionStatus.PAST_DUE,
        StripeSubscriptionStatus.PAUSED.value: SubscriptionStatus.PAST_DUE,
        StripeSubscriptionStatus.CANCELED.value: SubscriptionStatus.CANCELED,
        StripeSubscriptionStatus.INCOMPLETE_EXPIRED.value: SubscriptionStatus.CANCELED,
    }
    return mapping.get(provider_status, SubscriptionStatus.PAST_DUE)


def billing_cycle_from_interval(
    interval: Optional[str], fallback: Optional[str] = None
) -> Optional[BillingCycle]:
    if interval == "year":
        return BillingCycle.YEARLY
    if interval == "month":
        return BillingCycle.MONTHLY
    if fallback in (BillingCycle.MONTHLY.value, BillingCycle.YEARLY.value):
        return BillingCycle(fallback)
    return None


def build_subscription_state(
    subscription: ProviderSubscription,
    plan_tier: PlanTier,
    customer_id: Optional[str] = None,
) -> SubscriptionState:
    """
    Subscription state for an active (non-canceled) provider subscription.

    Period dates are taken as-is from the provider; an inverted period is
    rejected by ``SubscriptionState`` validation.
    """
    return SubscriptionState(
        plan_tier=plan_tier,
        status=map_provider_status(subscription.status),
        billing_cycle=billing_cycle_from_interval(
            subscription.billing_interval, subscription.metadata.get("billing_cycle")
        ),
        provider_customer_id=subscription.customer_id or customer_id,
        provider_subscription_id=subscription.id,
        current_period_start=subscription.current_period_start,
        current_period_end=subscription.current_period_end,
        cancel_at_period_end=subscription.cancel_at_period_end,
        trial_end=subscription.trial_end,
        canceled_at=subscription.canceled_at,
    )


def free_state(
    customer_id: Optional[str], canceled_at: Optional[datetime]
) -> SubscriptionState:
    """State after a paid subscription ends: free tier, canceled."""
    return SubscriptionState.free(
        provider_customer_id=customer_id,
        status=SubscriptionStatus.CANCELED,
        canceled_at=canceled_at,
    )

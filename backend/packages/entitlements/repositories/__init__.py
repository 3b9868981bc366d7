"""Entitlement repositories."""

from packages.entitlements.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.entitlements.repositories.profile_repository import ProfileRepository
from packages.entitlements.repositories.billing_event_repository import (
    BillingEventRepository,
)
from packages.entitlements.repositories.payment_repository import PaymentRepository
from packages.entitlements.repositories.usage_repository import UsageRepository
from packages.entitlements.repositories.weekly_discovery_repository import (
    WeeklyDiscoveryRepository,
)
from packages.entitlements.repositories.ai_search_repository import AISearchRepository

__all__ = [
    "SubscriptionRepository",
    "ProfileRepository",
    "BillingEventRepository",
    "PaymentRepository",
    "UsageRepository",
    "WeeklyDiscoveryRepository",
    "AISearchRepository",
]

"""Database models for entitlements."""

from packages.entitlements.models.database.subscription import UserSubscriptionEntity
from packages.entitlements.models.database.profile import UserProfileEntity
from packages.entitlements.models.database.billing_event import BillingEventEntity
from packages.entitlements.models.database.payment import PaymentEntity
from packages.entitlements.models.database.usage import UsageLedgerEntity
from packages.entitlements.models.database.discovery import (
    WeeklyDiscoveryWindowEntity,
    DiscoverySearchRunEntity,
)
from packages.entitlements.models.database.ai_search import AISearchEntity

__all__ = [
    "UserSubscriptionEntity",
    "UserProfileEntity",
    "BillingEventEntity",
    "PaymentEntity",
    "UsageLedgerEntity",
    "WeeklyDiscoveryWindowEntity",
    "DiscoverySearchRunEntity",
    "AISearchEntity",
]

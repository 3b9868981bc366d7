"""Domain models for entitlements."""

from packages.entitlements.models.domain.enums import (
    PlanTier,
    SubscriptionStatus,
    BillingCycle,
    UsageFeature,
    EventOutcome,
    PaymentStatus,
    AISearchStatus,
    UsageWarningLevel,
)
from packages.entitlements.models.domain.plans import (
    UNLIMITED,
    PlanLimits,
    PlanInfo,
    PlansResponse,
)
from packages.entitlements.models.domain.subscription import (
    SubscriptionState,
    SubscriptionRecord,
    ApplyResult,
)
from packages.entitlements.models.domain.usage import (
    LimitCheck,
    UsageSnapshot,
    UsageWarning,
    RolloverResult,
)
from packages.entitlements.models.domain.discovery import (
    WeeklyStats,
    WeeklyRecordResult,
    SlotCheck,
)
from packages.entitlements.models.domain.snapshot import SubscriptionSnapshot

__all__ = [
    # Enums
    "PlanTier",
    "SubscriptionStatus",
    "BillingCycle",
    "UsageFeature",
    "EventOutcome",
    "PaymentStatus",
    "AISearchStatus",
    "UsageWarningLevel",
    # Plans
    "UNLIMITED",
    "PlanLimits",
    "PlanInfo",
    "PlansResponse",
    # Subscription
    "SubscriptionState",
    "SubscriptionRecord",
    "ApplyResult",
    "SubscriptionSnapshot",
    # Usage
    "LimitCheck",
    "UsageSnapshot",
    "UsageWarning",
    "RolloverResult",
    # Discovery
    "WeeklyStats",
    "WeeklyRecordResult",
    "SlotCheck",
]

"""
Composed subscription snapshot returned to the dashboard.
"""

from pydantic import BaseModel

from packages.entitlements.models.domain.discovery import SlotCheck, WeeklyStats
from packages.entitlements.models.domain.plans import PlanLimits
from packages.entitlements.models.domain.subscription import SubscriptionRecord
from packages.entitlements.models.domain.usage import UsageSnapshot


class SubscriptionSnapshot(BaseModel):
    subscription: SubscriptionRecord
    limits: PlanLimits
    usage: UsageSnapshot
    weekly_discovery: WeeklyStats
    slots: SlotCheck
    # "provider" when refreshed from the billing provider during this call
    source: str = "persisted"
    drift_repaired: bool = False

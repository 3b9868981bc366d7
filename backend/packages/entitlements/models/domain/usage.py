"""
Domain models for monthly usage tracking and quotas.
"""

from datetime import date, datetime
from typing import Any, Optional

from pydantic import BaseModel, Field

from packages.entitlements.models.domain.enums import (
    PlanTier,
    UsageFeature,
    UsageWarningLevel,
)

WARNING_THRESHOLD = 80.0
CRITICAL_THRESHOLD = 95.0


class LimitCheck(BaseModel):
    """
    Result of a quota check.

    ``limit`` and ``remaining`` are -1 for unlimited features.
    """

    allowed: bool
    feature: UsageFeature
    plan_tier: PlanTier
    current: int
    limit: int
    remaining: int
    unlimited: bool = False

    def get_user_message(self) -> Optional[str]:
        """Get user-friendly message about quota status."""
        if self.allowed:
            return None
        label = self.feature.value.replace("_", " ")
        return f"Monthly {label} limit reached ({self.limit:,}). Upgrade to continue."


class FeatureUsage(BaseModel):
    feature: UsageFeature
    used: int
    limit: int
    remaining: int
    percentage: float
    unlimited: bool = False


class UsageSnapshot(BaseModel):
    """All counters of the current period with their plan limits."""

    user_id: str
    plan_tier: PlanTier
    period: date
    features: dict[str, FeatureUsage]

    def used(self, feature: UsageFeature) -> int:
        return self.features[feature.value].used


class UsageWarning(BaseModel):
    feature: UsageFeature
    level: UsageWarningLevel
    used: int
    limit: int
    percentage: float
    recommended_plan: PlanTier


class TrackItem(BaseModel):
    feature: UsageFeature
    quantity: int = Field(default=1, ge=1)
    metadata: Optional[dict[str, Any]] = None


class TrackResult(BaseModel):
    feature: UsageFeature
    success: bool
    used: Optional[int] = None
    error: Optional[str] = None


class BulkTrackResult(BaseModel):
    results: list[TrackResult]

    @property
    def all_succeeded(self) -> bool:
        return all(result.success for result in self.results)


class UsageLedgerEntry(BaseModel):
    """One (user, period) ledger row."""

    id: int
    user_id: str
    period: date
    resume_uploads: int = 0
    resume_analysis: int = 0
    job_imports: int = 0
    resume_tailoring: int = 0
    recruiter_unlocks: int = 0
    ai_job_discovery: int = 0
    ai_conversations: int = 0
    ai_messages: int = 0
    archived_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    def counters(self) -> dict[str, int]:
        return {feature.value: getattr(self, feature.value) for feature in UsageFeature}


class UsagePeriod(BaseModel):
    """A monthly period as shown in usage history."""

    period: date
    counters: dict[str, int]
    archived: bool = False
    archived_at: Optional[datetime] = None


class RolloverResult(BaseModel):
    reset_count: int = 0
    error_count: int = 0
    total_processed: int = 0
    reset_date: date

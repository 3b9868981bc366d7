"""
Domain models for the reconciled subscription record.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, model_validator

from packages.entitlements.models.domain.enums import (
    BillingCycle,
    PlanTier,
    SubscriptionStatus,
)

# Fields shared by both physical copies; drift detection compares exactly these
RECORD_FIELDS = (
    "plan_tier",
    "status",
    "billing_cycle",
    "provider_customer_id",
    "provider_subscription_id",
    "current_period_start",
    "current_period_end",
    "cancel_at_period_end",
    "trial_end",
    "canceled_at",
)


class SubscriptionState(BaseModel):
    """
    Provider-derived subscription state to be applied to a user's record.

    Enforces the record invariants: the period is ordered and the free tier
    carries no provider subscription.
    """

    plan_tier: PlanTier
    status: SubscriptionStatus
    billing_cycle: Optional[BillingCycle] = None
    provider_customer_id: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    trial_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None

    @model_validator(mode="after")
    def check_invariants(self):
        if (
            self.current_period_start is not None
            and self.current_period_end is not None
            and self.current_period_start > self.current_period_end
        ):
            raise ValueError("current_period_start must not be after current_period_end")
        if self.plan_tier == PlanTier.FREE and self.provider_subscription_id:
            raise ValueError("free tier cannot carry a provider subscription id")
        return self

    @classmethod
    def free(cls, provider_customer_id: Optional[str] = None, **overrides):
        """Default state for a user without a paid subscription."""
        values = {
            "plan_tier": PlanTier.FREE,
            "status": SubscriptionStatus.ACTIVE,
            "provider_customer_id": provider_customer_id,
        }
        values.update(overrides)
        return cls(**values)


class SubscriptionRecord(BaseModel):
    """The relational (authoritative) subscription row for a user."""

    id: int
    user_id: str

    plan_tier: PlanTier
    status: SubscriptionStatus
    billing_cycle: Optional[BillingCycle] = None

    provider_customer_id: Optional[str] = None
    provider_subscription_id: Optional[str] = None

    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    trial_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None

    provider_updated_at: Optional[datetime] = None

    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

    @property
    def is_paid(self) -> bool:
        return self.plan_tier.is_paid and self.status.has_access()

    def has_access(self) -> bool:
        return self.status.has_access()

    def to_state(self) -> SubscriptionState:
        return SubscriptionState.model_validate(
            {field: getattr(self, field) for field in RECORD_FIELDS}
        )

    def to_document(self) -> dict[str, Any]:
        """Profile replica of this record (JSON-safe)."""
        document = self.to_state().model_dump(mode="json")
        document["provider_updated_at"] = (
            self.provider_updated_at.isoformat() if self.provider_updated_at else None
        )
        return document


class ApplyResult(BaseModel):
    """Outcome of applying provider state to a user's record."""

    applied: bool
    reason: str  # applied, unchanged, stale
    record: Optional[SubscriptionRecord] = None
    replicated: bool = False

"""
Plan catalog: limits are a pure function of the plan tier.

``UNLIMITED`` (-1) marks a feature without a ceiling.
"""

from typing import Optional

from pydantic import BaseModel

from packages.entitlements.models.domain.enums import PlanTier, UsageFeature

UNLIMITED = -1


class PlanLimits(BaseModel):
    """Monthly feature quotas plus non-metered capabilities for a tier."""

    resume_uploads: int
    resume_analysis: int
    job_imports: int
    resume_tailoring: int
    recruiter_unlocks: int
    ai_job_discovery: int
    ai_conversations: int
    ai_messages: int

    recruiter_access: bool
    ai_assistant: bool
    ai_messages_per_conversation: int

    # AI discovery: rolling weekly allowance and concurrent search slots
    weekly_discovery_limit: int
    ai_search_slots: int

    def limit_for(self, feature: UsageFeature) -> int:
        return getattr(self, feature.value)


class PlanInfo(BaseModel):
    """Plan information combining pricing and limits."""

    tier: PlanTier
    name: str
    description: str
    price_cents: int
    yearly_price_cents: int
    price_formatted: str
    billing_period: str
    stripe_price_id: Optional[str] = None
    stripe_yearly_price_id: Optional[str] = None
    limits: PlanLimits
    features: list[str]


class PlansResponse(BaseModel):
    plans: list[PlanInfo]


PLAN_LIMITS: dict[PlanTier, PlanLimits] = {
    PlanTier.FREE: PlanLimits(
        resume_uploads=1,
        resume_analysis=1,
        job_imports=3,
        resume_tailoring=1,
        recruiter_unlocks=0,
        ai_job_discovery=0,
        ai_conversations=0,
        ai_messages=0,
        recruiter_access=False,
        ai_assistant=False,
        ai_messages_per_conversation=0,
        weekly_discovery_limit=0,
        ai_search_slots=0,
    ),
    PlanTier.CASUAL: PlanLimits(
        resume_uploads=5,
        resume_analysis=5,
        job_imports=25,
        resume_tailoring=25,
        recruiter_unlocks=25,
        ai_job_discovery=1,
        ai_conversations=0,
        ai_messages=0,
        recruiter_access=True,
        ai_assistant=False,
        ai_messages_per_conversation=0,
        weekly_discovery_limit=50,
        ai_search_slots=1,
    ),
    PlanTier.HUNTER: PlanLimits(
        resume_uploads=UNLIMITED,
        resume_analysis=UNLIMITED,
        job_imports=UNLIMITED,
        resume_tailoring=50,
        recruiter_unlocks=UNLIMITED,
        ai_job_discovery=UNLIMITED,
        ai_conversations=5,
        ai_messages=100,
        recruiter_access=True,
        ai_assistant=True,
        ai_messages_per_conversation=20,
        weekly_discovery_limit=100,
        ai_search_slots=1,
    ),
}

# Fallback prices (cents) when Stripe prices cannot be fetched
PLAN_PRICES_CENTS: dict[PlanTier, dict[str, int]] = {
    PlanTier.FREE: {"monthly": 0, "yearly": 0},
    PlanTier.CASUAL: {"monthly": 1999, "yearly": 19990},
    PlanTier.HUNTER: {"monthly": 3499, "yearly": 34990},
}

PLAN_METADATA: dict[PlanTier, dict[str, str]] = {
    PlanTier.FREE: {"name": "Free", "description": "Get started with the basics"},
    PlanTier.CASUAL: {
        "name": "Casual",
        "description": "For steady job seekers with one AI search running",
    },
    PlanTier.HUNTER: {
        "name": "Hunter",
        "description": "For active hunters who want the AI assistant",
    },
}

# Which plan unlocks more of a feature, for upgrade prompts
RECOMMENDED_PLAN: dict[UsageFeature, PlanTier] = {
    UsageFeature.RESUME_UPLOADS: PlanTier.CASUAL,
    UsageFeature.RESUME_ANALYSIS: PlanTier.CASUAL,
    UsageFeature.JOB_IMPORTS: PlanTier.CASUAL,
    UsageFeature.RESUME_TAILORING: PlanTier.CASUAL,
    UsageFeature.RECRUITER_UNLOCKS: PlanTier.CASUAL,
    UsageFeature.AI_JOB_DISCOVERY: PlanTier.CASUAL,
    UsageFeature.AI_CONVERSATIONS: PlanTier.HUNTER,
    UsageFeature.AI_MESSAGES: PlanTier.HUNTER,
}


def get_plan_limits(tier: PlanTier) -> PlanLimits:
    return PLAN_LIMITS[tier]


def get_feature_limit(tier: PlanTier, feature: UsageFeature) -> int:
    return PLAN_LIMITS[tier].limit_for(feature)


def is_unlimited(limit: int) -> bool:
    return limit == UNLIMITED


def recommended_plan_for(feature: UsageFeature) -> PlanTier:
    return RECOMMENDED_PLAN.get(feature, PlanTier.HUNTER)

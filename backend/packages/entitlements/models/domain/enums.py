"""
Entitlement enums - plan tiers, subscription states and metered features.
"""

from enum import Enum


class PlanTier(str, Enum):
    """
    Subscription plan tiers.

    Maps to Stripe price IDs (monthly and yearly) for the paid tiers.
    """

    FREE = "free"  # $0/mo - resume basics, no AI discovery
    CASUAL = "casual"  # $19.99/mo - one AI search, 50 jobs/week
    HUNTER = "hunter"  # $34.99/mo - assistant + 100 jobs/week

    @property
    def is_paid(self) -> bool:
        return self != PlanTier.FREE


class SubscriptionStatus(str, Enum):
    """
    Subscription status as observed through the billing provider.

    Flow: trialing -> active <-> past_due -> canceled
    """

    ACTIVE = "active"
    TRIALING = "trialing"
    PAST_DUE = "past_due"  # Payment failed, provider is retrying
    CANCELED = "canceled"

    def has_access(self) -> bool:
        """Check if this status grants paid-plan access."""
        return self in (
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.TRIALING,
            SubscriptionStatus.PAST_DUE,
        )


class BillingCycle(str, Enum):
    MONTHLY = "monthly"
    YEARLY = "yearly"


class UsageFeature(str, Enum):
    """Features metered by the monthly usage ledger."""

    RESUME_UPLOADS = "resume_uploads"
    RESUME_ANALYSIS = "resume_analysis"
    JOB_IMPORTS = "job_imports"
    RESUME_TAILORING = "resume_tailoring"
    RECRUITER_UNLOCKS = "recruiter_unlocks"
    AI_JOB_DISCOVERY = "ai_job_discovery"
    AI_CONVERSATIONS = "ai_conversations"
    AI_MESSAGES = "ai_messages"


class EventOutcome(str, Enum):
    """How a billing event was finalized in the event log."""

    APPLIED = "applied"  # Side effects written
    IGNORED = "ignored"  # Unhandled type or nothing to do
    ORPHANED = "orphaned"  # No user could be resolved
    FAILED = "failed"  # Handler raised; recovery is an on-demand sync


class PaymentStatus(str, Enum):
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class AISearchStatus(str, Enum):
    """Lifecycle of an AI job search resource."""

    RUNNING = "running"
    PAUSED = "paused"
    COMPLETED = "completed"
    STOPPED = "stopped"
    FAILED = "failed"

    @classmethod
    def active_states(cls) -> tuple["AISearchStatus", ...]:
        """States that occupy a slot."""
        return (cls.RUNNING, cls.PAUSED)


class UsageWarningLevel(str, Enum):
    WARNING = "warning"  # >= 80%
    CRITICAL = "critical"  # >= 95%

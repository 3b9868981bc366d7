"""
Database entity for the relational copy of a user's subscription.
"""

from sqlalchemy import Boolean, Column, Index, String
from sqlalchemy.sql import func

from common.db.base import Base, BigIntegerType, UTCDateTime, utcnow


class UserSubscriptionEntity(Base):
    """
    Normalized subscription row, one per user.

    This is the designated writer for subscription state; the user profile
    document is a replica refreshed from this row.
    """

    __tablename__ = "user_subscriptions"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, unique=True, index=True)

    plan_tier = Column(String(50), nullable=False, index=True)  # free, casual, hunter
    status = Column(
        String(50), nullable=False, index=True
    )  # active, trialing, past_due, canceled
    billing_cycle = Column(String(20), nullable=True)  # monthly, yearly

    # Billing provider IDs
    provider_customer_id = Column(String(255), nullable=True, index=True)
    provider_subscription_id = Column(String(255), nullable=True, unique=True)

    # Billing period (authoritative values come from the provider)
    current_period_start = Column(UTCDateTime, nullable=True)
    current_period_end = Column(UTCDateTime, nullable=True)
    cancel_at_period_end = Column(Boolean, nullable=False, default=False)
    trial_end = Column(UTCDateTime, nullable=True)
    canceled_at = Column(UTCDateTime, nullable=True)

    # Version stamp of the provider state last applied (event created time or sync time)
    provider_updated_at = Column(UTCDateTime, nullable=True)

    created_at = Column(UTCDateTime, default=utcnow, server_default=func.now())
    updated_at = Column(
        UTCDateTime, default=utcnow, onupdate=utcnow, server_default=func.now()
    )

    __table_args__ = (
        Index("idx_user_subscriptions_status_tier", "status", "plan_tier"),
        Index("idx_user_subscriptions_period_end", "current_period_end"),
    )

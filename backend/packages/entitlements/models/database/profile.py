"""
Database entity for the user profile document.
"""

from sqlalchemy import JSON, Column, String

from common.db.base import Base, BigIntegerType, UTCDateTime, utcnow


class UserProfileEntity(Base):
    """
    Document-shaped user profile as read by the dashboard.

    ``subscription`` is a replica of the user_subscriptions row, ``usage`` is a
    display cache of the current period counters and the active AI search
    count, ``usage_history`` is a bounded list of archived monthly periods.
    None of these are used for enforcement.
    """

    __tablename__ = "user_profiles"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, unique=True, index=True)

    subscription = Column(JSON, nullable=False, default=dict)
    usage = Column(JSON, nullable=False, default=dict)
    usage_history = Column(JSON, nullable=False, default=list)

    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

"""
Database entity for the monthly usage ledger.
"""

from sqlalchemy import Column, Date, Integer, String, UniqueConstraint

from common.db.base import Base, BigIntegerType, UTCDateTime, utcnow


class UsageLedgerEntity(Base):
    """
    Per-user, per-calendar-month counters, one column per metered feature.

    Column names match ``UsageFeature`` values. Rows for past periods are
    stamped ``archived_at`` by the monthly rollover and kept for analytics.
    """

    __tablename__ = "usage_ledger"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    period = Column(Date, nullable=False, index=True)  # first day of the month

    resume_uploads = Column(Integer, nullable=False, default=0)
    resume_analysis = Column(Integer, nullable=False, default=0)
    job_imports = Column(Integer, nullable=False, default=0)
    resume_tailoring = Column(Integer, nullable=False, default=0)
    recruiter_unlocks = Column(Integer, nullable=False, default=0)
    ai_job_discovery = Column(Integer, nullable=False, default=0)
    ai_conversations = Column(Integer, nullable=False, default=0)
    ai_messages = Column(Integer, nullable=False, default=0)

    archived_at = Column(UTCDateTime, nullable=True)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "period", name="uq_usage_ledger_user_period"),
    )

"""
Database entities for weekly AI job discovery tracking.
"""

from sqlalchemy import (
    Boolean,
    Column,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)

from common.db.base import Base, BigIntegerType, UTCDateTime, utcnow


class WeeklyDiscoveryWindowEntity(Base):
    """
    Jobs surfaced by AI discovery within one 7-day window.

    The weekly limit is derived from the plan at read time, never stored.
    """

    __tablename__ = "weekly_discovery_windows"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    week_start = Column(UTCDateTime, nullable=False)
    week_end = Column(UTCDateTime, nullable=False)  # exclusive
    week_year = Column(Integer, nullable=False)
    week_number = Column(Integer, nullable=False)
    jobs_found_this_week = Column(Integer, nullable=False, default=0)

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "week_start", name="uq_discovery_user_week"),
    )


class DiscoverySearchRunEntity(Base):
    """A single discovery cycle that added jobs to a weekly window."""

    __tablename__ = "discovery_search_runs"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    window_id = Column(
        BigIntegerType,
        ForeignKey("weekly_discovery_windows.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id = Column(String(255), nullable=False, index=True)
    search_id = Column(String(255), nullable=True, index=True)
    search_name = Column(String(255), nullable=True)
    resume_name = Column(String(255), nullable=True)
    run_date = Column(UTCDateTime, nullable=False, default=utcnow)
    jobs_found = Column(Integer, nullable=False, default=0)

    # Deleting a search does not give back weekly allowance
    search_deleted = Column(Boolean, nullable=False, default=False)
    deleted_at = Column(UTCDateTime, nullable=True)

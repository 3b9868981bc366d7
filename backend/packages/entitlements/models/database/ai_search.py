"""
Database entity for AI job search resources.
"""

from sqlalchemy import Column, Index, String

from common.db.base import Base, BigIntegerType, UTCDateTime, utcnow


class AISearchEntity(Base):
    """
    An AI job search owned by a user.

    Its ``status`` is the only source of truth for slot occupancy.
    """

    __tablename__ = "ai_searches"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False)  # running, paused, completed, ...

    created_at = Column(UTCDateTime, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("idx_ai_searches_user_status", "user_id", "status"),)

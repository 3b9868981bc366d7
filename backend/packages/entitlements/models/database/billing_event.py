"""
Database entity for inbound billing events (the event log).
"""

from sqlalchemy import JSON, Boolean, Column, Index, String, Text

from common.db.base import Base, BigIntegerType, UTCDateTime, utcnow


class BillingEventEntity(Base):
    """
    Append-only log of provider events keyed by the provider event ID.

    ``claimed_at`` is a processing lease: the delivery that sets it owns the
    event until it is marked processed or the lease goes stale.
    """

    __tablename__ = "billing_events"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    event_id = Column(String(255), nullable=False, unique=True, index=True)
    event_type = Column(String(100), nullable=False, index=True)

    received_at = Column(UTCDateTime, nullable=False, default=utcnow)
    claimed_at = Column(UTCDateTime, nullable=True)
    processed = Column(Boolean, nullable=False, default=False)
    processed_at = Column(UTCDateTime, nullable=True)
    outcome = Column(String(20), nullable=True)  # applied, ignored, orphaned, failed
    error_message = Column(Text, nullable=True)

    # Resolved internal user (null until resolved, stays null for orphans)
    user_id = Column(String(255), nullable=True, index=True)

    raw_payload = Column(JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("idx_billing_events_processed_received", "processed", "received_at"),
    )

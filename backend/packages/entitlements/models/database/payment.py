"""
Database entity for payment history.
"""

from sqlalchemy import Column, Index, Numeric, String

from common.db.base import Base, BigIntegerType, UTCDateTime, utcnow


class PaymentEntity(Base):
    """
    One row per provider payment attempt chain.

    ``provider_payment_intent_id`` is the idempotency key: rows are only
    ever inserted if absent, so redelivered invoice events cannot duplicate
    history.
    """

    __tablename__ = "payments"

    id = Column(BigIntegerType, primary_key=True, index=True, autoincrement=True)
    user_id = Column(String(255), nullable=False, index=True)

    provider_payment_intent_id = Column(String(255), nullable=False, unique=True)
    provider_invoice_id = Column(String(255), nullable=True, index=True)
    provider_subscription_id = Column(String(255), nullable=True)

    amount = Column(Numeric(12, 2), nullable=False)  # major units
    currency = Column(String(10), nullable=False)
    status = Column(String(20), nullable=False)  # succeeded, failed
    billing_reason = Column(String(50), nullable=True)
    invoice_url = Column(String(1024), nullable=True)
    receipt_url = Column(String(1024), nullable=True)

    paid_at = Column(UTCDateTime, nullable=True)
    created_at = Column(UTCDateTime, nullable=False, default=utcnow)
    updated_at = Column(UTCDateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (Index("idx_payments_user_created", "user_id", "created_at"),)

"""
Domain models for payment history.
"""

from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel

from packages.entitlements.models.domain.enums import PaymentStatus


class PaymentRecord(BaseModel):
    id: int
    user_id: str
    provider_payment_intent_id: str
    provider_invoice_id: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    amount: Decimal
    currency: str
    status: PaymentStatus
    billing_reason: Optional[str] = None
    invoice_url: Optional[str] = None
    receipt_url: Optional[str] = None
    paid_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class PaymentCreateModel(BaseModel):
    user_id: str
    provider_payment_intent_id: str
    provider_invoice_id: Optional[str] = None
    provider_subscription_id: Optional[str] = None
    amount: Decimal
    currency: str
    status: PaymentStatus
    billing_reason: Optional[str] = None
    invoice_url: Optional[str] = None
    receipt_url: Optional[str] = None
    paid_at: Optional[datetime] = None

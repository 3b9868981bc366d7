"""
Provider-neutral shapes returned by the billing gateway.

Everything above the gateway works with these; raw Stripe objects never
leave providers/payment.
"""

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field


class CustomerRef(BaseModel):
    customer_id: str
    created: bool = False  # False when an existing customer was reused


class SessionRef(BaseModel):
    """A hosted checkout or portal session the user is redirected to."""

    id: str
    url: str
    customer_id: Optional[str] = None


class ProviderEvent(BaseModel):
    """A verified webhook event."""

    id: str
    type: str
    created: datetime
    data_object: dict[str, Any] = Field(default_factory=dict)
    livemode: bool = False


class ProviderSubscription(BaseModel):
    """
    Normalized provider subscription.

    ``status`` is the provider's raw status string; mapping to
    ``SubscriptionStatus`` happens in the services.
    """

    id: str
    customer_id: Optional[str] = None
    status: str
    current_period_start: Optional[datetime] = None
    current_period_end: Optional[datetime] = None
    cancel_at_period_end: bool = False
    trial_end: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    price_id: Optional[str] = None
    billing_interval: Optional[str] = None  # month, year
    metadata: dict[str, str] = Field(default_factory=dict)
    # When this copy was read from the provider (None for webhook payloads)
    retrieved_at: Optional[datetime] = None


class ProviderCustomer(BaseModel):
    id: str
    email: Optional[str] = None
    name: Optional[str] = None
    deleted: bool = False
    metadata: dict[str, str] = Field(default_factory=dict)

    @property
    def user_id(self) -> Optional[str]:
        return self.metadata.get("user_id") or self.metadata.get("userId")


class ProviderInvoice(BaseModel):
    id: str
    number: Optional[str] = None
    status: Optional[str] = None
    amount_due_cents: int = 0
    amount_paid_cents: int = 0
    currency: str = "usd"
    hosted_invoice_url: Optional[str] = None
    invoice_pdf: Optional[str] = None
    billing_reason: Optional[str] = None
    created: Optional[datetime] = None
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

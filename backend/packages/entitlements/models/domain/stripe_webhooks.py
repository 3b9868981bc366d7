"""
Domain models for Stripe webhook payloads.

Strongly-typed Pydantic models for the Stripe objects carried by the webhook
events we act on. Unknown fields are ignored.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from packages.entitlements.models.domain.provider import ProviderSubscription


class StripeWebhookType(str, Enum):
    """Stripe webhook event types we care about."""

    # Checkout
    CHECKOUT_SESSION_COMPLETED = "checkout.session.completed"

    # Subscription
    SUBSCRIPTION_CREATED = "customer.subscription.created"
    SUBSCRIPTION_UPDATED = "customer.subscription.updated"
    SUBSCRIPTION_DELETED = "customer.subscription.deleted"

    # Payment
    INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
    INVOICE_PAID = "invoice.paid"
    INVOICE_PAYMENT_FAILED = "invoice.payment_failed"


class StripeSubscriptionStatus(str, Enum):
    """Stripe subscription status values."""

    INCOMPLETE = "incomplete"
    INCOMPLETE_EXPIRED = "incomplete_expired"
    TRIALING = "trialing"
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"
    UNPAID = "unpaid"
    PAUSED = "paused"


def from_timestamp(value: Optional[int]) -> Optional[datetime]:
    if value is None:
        return None
    return datetime.fromtimestamp(value, tz=timezone.utc)


class StripeMetadata(BaseModel):
    """Stripe metadata (we store the internal user id and plan here)."""

    model_config = ConfigDict(populate_by_name=True)

    # Older checkout sessions were created with camelCase keys
    user_id: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("user_id", "userId")
    )
    plan_name: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("plan_name", "planName")
    )
    billing_cycle: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("billing_cycle", "billingCycle")
    )


class StripeSubscriptionData(BaseModel):
    """
    Stripe subscription object.

    Newer API versions moved the period dates onto the subscription items, so
    both locations are read.
    """

    id: str
    customer: Optional[str] = None
    status: StripeSubscriptionStatus
    current_period_start: Optional[int] = None
    current_period_end: Optional[int] = None
    cancel_at_period_end: bool = False
    canceled_at: Optional[int] = None
    trial_end: Optional[int] = None
    items: dict[str, Any] = Field(default_factory=dict)
    metadata: StripeMetadata = Field(default_factory=StripeMetadata)

    def _first_item(self) -> dict[str, Any]:
        data = self.items.get("data") or []
        return data[0] if data else {}

    @property
    def period_start(self) -> Optional[int]:
        return self.current_period_start or self._first_item().get(
            "current_period_start"
        )

    @property
    def period_end(self) -> Optional[int]:
        return self.current_period_end or self._first_item().get("current_period_end")

    @property
    def price_id(self) -> Optional[str]:
        price = self._first_item().get("price") or {}
        return price.get("id")

    @property
    def billing_interval(self) -> Optional[str]:
        price = self._first_item().get("price") or {}
        return (price.get("recurring") or {}).get("interval")


class StripeInvoiceData(BaseModel):
    """Stripe invoice object."""

    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None
    status: Optional[str] = None
    amount_due: int = 0
    amount_paid: int = 0
    currency: str = "usd"
    billing_reason: Optional[str] = None
    hosted_invoice_url: Optional[str] = None
    receipt_url: Optional[str] = None
    payment_intent: Optional[str] = None
    created: Optional[int] = None
    parent: Optional[dict[str, Any]] = None
    metadata: StripeMetadata = Field(default_factory=StripeMetadata)

    @property
    def subscription_id(self) -> Optional[str]:
        if self.subscription:
            return self.subscription
        details = (self.parent or {}).get("subscription_details") or {}
        return details.get("subscription")

    @property
    def subscription_metadata(self) -> StripeMetadata:
        details = (self.parent or {}).get("subscription_details") or {}
        return StripeMetadata.model_validate(details.get("metadata") or {})

    @property
    def payment_key(self) -> str:
        """Idempotency key for the payment row built from this invoice."""
        if self.payment_intent:
            return self.payment_intent
        return f"invoice:{self.id}"


class StripeCheckoutSessionData(BaseModel):
    """Stripe checkout session object."""

    id: str
    customer: Optional[str] = None
    subscription: Optional[str] = None
    mode: Optional[str] = None
    payment_status: Optional[str] = None
    status: Optional[str] = None
    customer_email: Optional[str] = None
    metadata: StripeMetadata = Field(default_factory=StripeMetadata)


def subscription_from_stripe(data: dict[str, Any]) -> ProviderSubscription:
    """Normalize a raw Stripe subscription object."""
    customer = data.get("customer")
    if isinstance(customer, dict):
        data = {**data, "customer": customer.get("id")}
    subscription = StripeSubscriptionData.model_validate(data)
    return ProviderSubscription(
        id=subscription.id,
        customer_id=subscription.customer,
        status=subscription.status.value,
        current_period_start=from_timestamp(subscription.period_start),
        current_period_end=from_timestamp(subscription.period_end),
        cancel_at_period_end=subscription.cancel_at_period_end,
        trial_end=from_timestamp(subscription.trial_end),
        canceled_at=from_timestamp(subscription.canceled_at),
        price_id=subscription.price_id,
        billing_interval=subscription.billing_interval,
        metadata={
            key: value
            for key, value in subscription.metadata.model_dump().items()
            if value is not None
        },
    )

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from common.core.config import settings
from packages.entitlements.models.domain.provider import (
    ProviderEvent,
    ProviderSubscription,
)

CASUAL_MONTHLY_PRICE = "price_casual_monthly"
CASUAL_YEARLY_PRICE = "price_casual_yearly"
HUNTER_MONTHLY_PRICE = "price_hunter_monthly"
HUNTER_YEARLY_PRICE = "price_hunter_yearly"


def _ts(moment: datetime) -> int:
    return int(moment.timestamp())


@pytest.fixture
def configured_prices(monkeypatch):
    """Stripe price IDs for every paid plan and cycle."""
    monkeypatch.setattr(settings, "stripe_price_id_casual_monthly", CASUAL_MONTHLY_PRICE)
    monkeypatch.setattr(settings, "stripe_price_id_casual_yearly", CASUAL_YEARLY_PRICE)
    monkeypatch.setattr(settings, "stripe_price_id_hunter_monthly", HUNTER_MONTHLY_PRICE)
    monkeypatch.setattr(settings, "stripe_price_id_hunter_yearly", HUNTER_YEARLY_PRICE)


@pytest.fixture
def stripe_subscription():
    """Factory for raw Stripe subscription objects as carried by webhooks."""

    def _make(
        subscription_id: str = "sub_test123",
        customer: Optional[str] = "cus_test123",
        status: str = "active",
        price_id: Optional[str] = None,
        interval: str = "month",
        user_id: Optional[str] = None,
        plan_name: Optional[str] = None,
        cancel_at_period_end: bool = False,
        period_start: Optional[datetime] = None,
    ) -> dict[str, Any]:
        start = period_start or datetime.now(timezone.utc).replace(microsecond=0)
        metadata = {}
        if user_id:
            metadata["user_id"] = user_id
        if plan_name:
            metadata["plan_name"] = plan_name
        return {
            "id": subscription_id,
            "object": "subscription",
            "customer": customer,
            "status": status,
            "cancel_at_period_end": cancel_at_period_end,
            "canceled_at": None,
            "trial_end": None,
            "items": {
                "data": [
                    {
                        "id": "si_test123",
                        "current_period_start": _ts(start),
                        "current_period_end": _ts(start + timedelta(days=30)),
                        "price": {
                            "id": price_id,
                            "recurring": {"interval": interval},
                        },
                    }
                ]
            },
            "metadata": metadata,
        }

    return _make


@pytest.fixture
def stripe_invoice():
    """Factory for raw Stripe invoice objects."""

    def _make(
        invoice_id: str = "in_test123",
        customer: Optional[str] = "cus_test123",
        subscription: Optional[str] = "sub_test123",
        amount_due: int = 1999,
        amount_paid: int = 0,
        payment_intent: Optional[str] = "pi_test123",
        billing_reason: str = "subscription_cycle",
    ) -> dict[str, Any]:
        return {
            "id": invoice_id,
            "object": "invoice",
            "customer": customer,
            "subscription": subscription,
            "status": "paid" if amount_paid else "open",
            "amount_due": amount_due,
            "amount_paid": amount_paid,
            "currency": "usd",
            "billing_reason": billing_reason,
            "hosted_invoice_url": f"https://invoice.stripe.com/{invoice_id}",
            "payment_intent": payment_intent,
            "metadata": {},
        }

    return _make


@pytest.fixture
def provider_event():
    """Factory for verified webhook events."""

    def _make(
        event_type: str,
        data_object: dict[str, Any],
        event_id: str = "evt_test123",
        created: Optional[datetime] = None,
    ) -> ProviderEvent:
        return ProviderEvent(
            id=event_id,
            type=event_type,
            created=created or datetime.now(timezone.utc).replace(microsecond=0),
            data_object=data_object,
        )

    return _make


@pytest.fixture
def provider_subscription():
    """Factory for normalized subscriptions as returned by the gateway."""

    def _make(
        subscription_id: str = "sub_test123",
        status: str = "active",
        price_id: Optional[str] = None,
        plan_name: Optional[str] = None,
        interval: str = "month",
        cancel_at_period_end: bool = False,
        period_start: Optional[datetime] = None,
        retrieved_at: Optional[datetime] = None,
        customer_id: str = "cus_test123",
    ) -> ProviderSubscription:
        start = period_start or datetime.now(timezone.utc).replace(microsecond=0) - timedelta(
            days=3
        )
        return ProviderSubscription(
            id=subscription_id,
            customer_id=customer_id,
            status=status,
            current_period_start=start,
            current_period_end=start + timedelta(days=30),
            cancel_at_period_end=cancel_at_period_end,
            price_id=price_id,
            billing_interval=interval,
            metadata={"plan_name": plan_name} if plan_name else {},
            retrieved_at=retrieved_at,
        )

    return _make

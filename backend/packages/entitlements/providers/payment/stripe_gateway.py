"""
Stripe implementation of the billing gateway.
"""

import asyncio
import json
from typing import Any, Callable, Optional

import stripe

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger, trace_span
from common.db.base import utcnow
from packages.entitlements.exceptions import (
    InvalidSignature,
    MalformedEvent,
    ProviderRequestError,
    ProviderUnavailable,
)
from packages.entitlements.models.domain.provider import (
    CustomerRef,
    ProviderCustomer,
    ProviderEvent,
    ProviderInvoice,
    ProviderSubscription,
    SessionRef,
)
from packages.entitlements.models.domain.stripe_webhooks import (
    from_timestamp,
    subscription_from_stripe,
)
from packages.entitlements.providers.payment.interface import BillingGatewayInterface

logger = get_logger(__name__)


def _as_dict(obj: Any) -> dict[str, Any]:
    """Plain dict copy of a StripeObject (recursively)."""
    if obj is None:
        return {}
    if isinstance(obj, stripe.StripeObject):
        return json.loads(str(obj))
    return dict(obj)


class StripeBillingGateway(BillingGatewayInterface):
    """Stripe-based billing gateway."""

    def __init__(self):
        """Initialize Stripe with API credentials."""
        stripe.api_key = settings.stripe_secret_key
        # Single bounded attempt per call
        stripe.max_network_retries = settings.stripe_max_network_retries
        self.timeout = settings.stripe_request_timeout_seconds
        # Bounds the request itself, so a timed-out call releases its thread
        stripe.default_http_client = stripe.RequestsClient(timeout=self.timeout)

    async def _call(self, operation: str, fn: Callable, *args, **kwargs) -> Any:
        """Run a blocking Stripe call off the event loop with a bounded timeout."""
        try:
            return await asyncio.wait_for(
                asyncio.to_thread(fn, *args, **kwargs), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            logger.warning(
                f"Stripe {operation} timed out after {self.timeout}s",
                extra={"operation": operation},
            )
            raise ProviderUnavailable(operation, "timeout") from e
        except (
            stripe.APIConnectionError,
            stripe.RateLimitError,
            stripe.AuthenticationError,
            stripe.APIError,
        ) as e:
            logger.error(
                f"Stripe {operation} unavailable: {str(e)}",
                extra={"operation": operation, "error": str(e)},
            )
            raise ProviderUnavailable(operation, str(e)) from e
        except stripe.StripeError as e:
            status = getattr(e, "http_status", None)
            if status is not None and status >= 500:
                raise ProviderUnavailable(operation, str(e)) from e
            logger.warning(
                f"Stripe rejected {operation}: {e.user_message or str(e)}",
                extra={"operation": operation, "code": e.code},
            )
            raise ProviderRequestError(
                operation, e.user_message or str(e), code=e.code
            ) from e

    @trace_span
    async def create_or_get_customer(
        self,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        existing_customer_id: Optional[str] = None,
    ) -> CustomerRef:
        if existing_customer_id:
            logger.info(
                "Reusing existing Stripe customer",
                extra={"user_id": user_id, "customer_id": existing_customer_id},
            )
            return CustomerRef(customer_id=existing_customer_id, created=False)

        customer = await self._call(
            "create_customer",
            stripe.Customer.create,
            email=email,
            name=name,
            metadata={"user_id": user_id},
        )
        logger.info(
            "Created new Stripe customer",
            extra={"user_id": user_id, "customer_id": customer.id},
        )
        return CustomerRef(customer_id=customer.id, created=True)

    @trace_span
    async def create_checkout_session(
        self,
        user_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        plan_name: str,
        customer_id: Optional[str] = None,
        billing_cycle: str = "monthly",
        trial_days: Optional[int] = None,
    ) -> SessionRef:
        subscription_data: dict[str, Any] = {
            "metadata": {"user_id": user_id, "plan_name": plan_name}
        }
        if trial_days:
            subscription_data["trial_period_days"] = trial_days

        params: dict[str, Any] = {
            "mode": "subscription",
            "payment_method_types": ["card"],
            "line_items": [{"price": price_id, "quantity": 1}],
            "success_url": success_url,
            "cancel_url": cancel_url,
            "client_reference_id": user_id,
            "metadata": {
                "user_id": user_id,
                "plan_name": plan_name,
                "billing_cycle": billing_cycle,
            },
            "subscription_data": subscription_data,
            "allow_promotion_codes": True,
        }
        if customer_id:
            params["customer"] = customer_id

        session = await self._call(
            "create_checkout_session", stripe.checkout.Session.create, **params
        )
        logger.info(
            "Created Stripe checkout session",
            extra={"user_id": user_id, "plan": plan_name, "session_id": session.id},
        )
        return SessionRef(id=session.id, url=session.url, customer_id=customer_id)

    @trace_span
    async def create_portal_session(self, customer_id: str, return_url: str) -> SessionRef:
        session = await self._call(
            "create_portal_session",
            stripe.billing_portal.Session.create,
            customer=customer_id,
            return_url=return_url,
        )
        logger.info("Created Stripe portal session", extra={"customer_id": customer_id})
        return SessionRef(id=session.id, url=session.url, customer_id=customer_id)

    @trace_span
    async def get_subscription(self, subscription_id: str) -> ProviderSubscription:
        subscription = await self._call(
            "get_subscription", stripe.Subscription.retrieve, subscription_id
        )
        return subscription_from_stripe(_as_dict(subscription)).model_copy(
            update={"retrieved_at": utcnow()}
        )

    @trace_span
    async def get_customer(self, customer_id: str) -> ProviderCustomer:
        customer = _as_dict(
            await self._call("get_customer", stripe.Customer.retrieve, customer_id)
        )
        return ProviderCustomer(
            id=customer.get("id", customer_id),
            email=customer.get("email"),
            name=customer.get("name"),
            deleted=bool(customer.get("deleted", False)),
            metadata={
                key: str(value) for key, value in (customer.get("metadata") or {}).items()
            },
        )

    @trace_span
    async def cancel_subscription(
        self, subscription_id: str, at_period_end: bool = True
    ) -> ProviderSubscription:
        if at_period_end:
            subscription = await self._call(
                "cancel_subscription",
                stripe.Subscription.modify,
                subscription_id,
                cancel_at_period_end=True,
            )
        else:
            subscription = await self._call(
                "cancel_subscription", stripe.Subscription.cancel, subscription_id
            )
        logger.info(
            "Cancelled Stripe subscription",
            extra={"subscription_id": subscription_id, "at_period_end": at_period_end},
        )
        return subscription_from_stripe(_as_dict(subscription))

    @trace_span
    async def resume_subscription(self, subscription_id: str) -> ProviderSubscription:
        subscription = await self._call(
            "resume_subscription",
            stripe.Subscription.modify,
            subscription_id,
            cancel_at_period_end=False,
        )
        logger.info(
            "Resumed Stripe subscription", extra={"subscription_id": subscription_id}
        )
        return subscription_from_stripe(_as_dict(subscription))

    @trace_span
    async def change_plan(
        self,
        subscription_id: str,
        new_price_id: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> ProviderSubscription:
        """
        Update the existing subscription to a new price.

        Used for paid -> paid upgrades/downgrades instead of a new checkout.
        """
        current = _as_dict(
            await self._call(
                "change_plan", stripe.Subscription.retrieve, subscription_id
            )
        )
        items = (current.get("items") or {}).get("data") or []
        if not items:
            raise ProviderRequestError(
                "change_plan", f"Subscription {subscription_id} has no items"
            )

        params: dict[str, Any] = {
            "items": [{"id": items[0]["id"], "price": new_price_id}],
            "proration_behavior": "create_prorations",
        }
        if metadata:
            params["metadata"] = metadata

        subscription = await self._call(
            "change_plan", stripe.Subscription.modify, subscription_id, **params
        )
        logger.info(
            "Updated Stripe subscription price",
            extra={"subscription_id": subscription_id, "price_id": new_price_id},
        )
        return subscription_from_stripe(_as_dict(subscription))

    @trace_span
    async def list_invoices(
        self, customer_id: str, limit: int = 10
    ) -> list[ProviderInvoice]:
        invoices = _as_dict(
            await self._call(
                "list_invoices", stripe.Invoice.list, customer=customer_id, limit=limit
            )
        )
        return [
            ProviderInvoice(
                id=invoice["id"],
                number=invoice.get("number"),
                status=invoice.get("status"),
                amount_due_cents=invoice.get("amount_due") or 0,
                amount_paid_cents=invoice.get("amount_paid") or 0,
                currency=invoice.get("currency") or "usd",
                hosted_invoice_url=invoice.get("hosted_invoice_url"),
                invoice_pdf=invoice.get("invoice_pdf"),
                billing_reason=invoice.get("billing_reason"),
                created=from_timestamp(invoice.get("created")),
                period_start=from_timestamp(invoice.get("period_start")),
                period_end=from_timestamp(invoice.get("period_end")),
            )
            for invoice in invoices.get("data") or []
        ]

    @trace_span
    async def get_price_amount(self, price_id: str) -> Optional[int]:
        price = await self._call("get_price", stripe.Price.retrieve, price_id)
        return _as_dict(price).get("unit_amount")

    def verify_signature(
        self, payload: bytes, signature: str, secret: str
    ) -> ProviderEvent:
        try:
            stripe.Webhook.construct_event(payload, signature, secret)
        except stripe.SignatureVerificationError as e:
            logger.warning(f"Invalid Stripe webhook signature: {e}")
            raise InvalidSignature("Invalid webhook signature") from e
        except ValueError as e:
            raise MalformedEvent("Invalid webhook payload") from e

        try:
            body = json.loads(payload)
        except ValueError as e:
            raise MalformedEvent("Invalid webhook payload") from e

        if not isinstance(body, dict) or not body.get("id") or not body.get("type"):
            raise MalformedEvent("Webhook event is missing id or type")

        # The creation time is the event's version; an unstamped event cannot be ordered
        created = body.get("created")
        if not isinstance(created, int) or created <= 0:
            raise MalformedEvent("Webhook event is missing its creation time")

        return ProviderEvent(
            id=body["id"],
            type=body["type"],
            created=from_timestamp(created),
            data_object=(body.get("data") or {}).get("object") or {},
            livemode=bool(body.get("livemode", False)),
        )

    @trace_span
    async def health_check(self) -> bool:
        """Check Stripe health."""
        try:
            await self._call("health_check", stripe.Account.retrieve)
            return True
        except (ProviderUnavailable, ProviderRequestError) as e:
            logger.error(f"Billing gateway health check failed: {e}")
            return False

"""
Billing webhook processing.

Every verified event goes through the same steps:

1. Admission: the event is logged by ID; an already processed ID returns
   immediately and a delivery already in flight is acknowledged.
2. Dispatch on event type; unknown types are acknowledged and ignored.
3. User resolution: event metadata, then our own customer/subscription
   lookup, then the provider customer's metadata.
4. Side effects, each idempotent on its own key.
5. Finalization: the event is marked processed with its outcome, whatever
   happened in steps 2-4.

Processing failures are recorded on the event, never raised to the endpoint,
so the provider does not retry into the same failure. Recovery is an
on-demand sync from the provider.
"""

from datetime import timedelta
from decimal import Decimal
from typing import Awaitable, Callable, NamedTuple, Optional

from common.core.otel_axiom_exporter import get_logger, log_span_event, trace_span
from packages.entitlements.exceptions import (
    HandlerFailure,
    OrphanedEvent,
    ProviderRequestError,
    ProviderUnavailable,
)
from packages.entitlements.models.domain.billing_event import WebhookResult
from packages.entitlements.models.domain.enums import (
    EventOutcome,
    PaymentStatus,
    SubscriptionStatus,
)
from packages.entitlements.models.domain.payment import PaymentCreateModel
from packages.entitlements.models.domain.provider import ProviderEvent
from packages.entitlements.models.domain.stripe_webhooks import (
    StripeCheckoutSessionData,
    StripeInvoiceData,
    StripeWebhookType,
    subscription_from_stripe,
)
from packages.entitlements.models.domain.subscription import ApplyResult
from packages.entitlements.providers.payment.factory import get_billing_gateway
from packages.entitlements.repositories.billing_event_repository import (
    BillingEventRepository,
)
from packages.entitlements.repositories.payment_repository import PaymentRepository
from packages.entitlements.services.plan_catalog_service import PlanCatalogService
from packages.entitlements.services.provider_state import map_provider_status
from packages.entitlements.services.reconciliation_service import (
    ReconciliationService,
)
from packages.entitlements.services.subscription_record_service import (
    SubscriptionRecordService,
)

logger = get_logger(__name__)

# A claim older than this is treated as abandoned by a crashed delivery
CLAIM_LEASE = timedelta(minutes=5)


class Handled(NamedTuple):
    outcome: EventOutcome
    user_id: Optional[str] = None
    message: Optional[str] = None


def _outcome_of(result: ApplyResult) -> EventOutcome:
    return EventOutcome.APPLIED if result.applied else EventOutcome.IGNORED


def _cents_to_amount(cents: int) -> Decimal:
    return (Decimal(cents) / Decimal(100)).quantize(Decimal("0.01"))


class WebhookProcessor:
    """Idempotent processor for verified billing provider events."""

    def __init__(self):
        self.gateway = get_billing_gateway()
        self.event_repo = BillingEventRepository()
        self.payment_repo = PaymentRepository()
        self.subscription_records = SubscriptionRecordService()
        self.reconciliation = ReconciliationService()
        self.plans = PlanCatalogService()

        self._handlers: dict[str, Callable[[ProviderEvent], Awaitable[Handled]]] = {
            StripeWebhookType.CHECKOUT_SESSION_COMPLETED.value: self._handle_checkout_completed,
            StripeWebhookType.SUBSCRIPTION_CREATED.value: self._handle_subscription_changed,
            StripeWebhookType.SUBSCRIPTION_UPDATED.value: self._handle_subscription_changed,
            StripeWebhookType.SUBSCRIPTION_DELETED.value: self._handle_subscription_deleted,
            StripeWebhookType.INVOICE_PAYMENT_SUCCEEDED.value: self._handle_payment_succeeded,
            StripeWebhookType.INVOICE_PAID.value: self._handle_payment_succeeded,
            StripeWebhookType.INVOICE_PAYMENT_FAILED.value: self._handle_payment_failed,
        }

    @trace_span
    async def handle(self, event: ProviderEvent) -> WebhookResult:
        """Process one verified event. Safe to call any number of times per event."""
        stored = await self.event_repo.record_received(
            event.id,
            event.type,
            {
                "id": event.id,
                "type": event.type,
                "created": event.created.isoformat(),
                "livemode": event.livemode,
                "data": {"object": event.data_object},
            },
        )
        if stored.processed:
            log_span_event(
                f"Duplicate billing event {event.id} ignored",
                {"event_id": event.id, "event_type": event.type},
            )
            return WebhookResult(
                event_id=event.id,
                event_type=event.type,
                outcome=stored.outcome or EventOutcome.IGNORED,
                duplicate=True,
                user_id=stored.user_id,
            )

        if not await self.event_repo.claim(event.id, CLAIM_LEASE):
            logger.info(
                f"Billing event {event.id} is already being processed",
                extra={"event_id": event.id, "event_type": event.type},
            )
            return WebhookResult(
                event_id=event.id,
                event_type=event.type,
                outcome=EventOutcome.IGNORED,
                duplicate=True,
                message="in progress",
            )

        handled = await self._dispatch(event)

        await self.event_repo.mark_processed(
            event.id,
            handled.outcome,
            user_id=handled.user_id,
            error_message=handled.message
            if handled.outcome in (EventOutcome.FAILED, EventOutcome.ORPHANED)
            else None,
        )
        return WebhookResult(
            event_id=event.id,
            event_type=event.type,
            outcome=handled.outcome,
            user_id=handled.user_id,
            message=handled.message,
        )

    async def _dispatch(self, event: ProviderEvent) -> Handled:
        handler = self._handlers.get(event.type)
        if handler is None:
            logger.info(
                f"Unhandled billing event type: {event.type}",
                extra={"event_id": event.id, "event_type": event.type},
            )
            return Handled(EventOutcome.IGNORED, message="unhandled event type")

        logger.info(
            f"Processing billing event: {event.type}",
            extra={
                "event_id": event.id,
                "event_type": event.type,
                "livemode": event.livemode,
            },
        )

        try:
            return await handler(event)
        except OrphanedEvent as e:
            logger.error(
                f"Orphaned billing event {event.id}: {e.message}",
                extra={
                    "event_id": event.id,
                    "event_type": event.type,
                    "customer_id": e.customer_id,
                    "orphaned": True,
                },
            )
            return Handled(EventOutcome.ORPHANED, message=e.message)
        except Exception as e:
            failure = HandlerFailure(event.id, event.type, e)
            logger.error(
                f"Billing event handler failed for {event.id}: {failure.message}",
                extra={
                    "event_id": event.id,
                    "event_type": event.type,
                    "error": str(e),
                    "handler_failure": True,
                },
            )
            return Handled(EventOutcome.FAILED, message=failure.message)

    async def _resolve_user(
        self,
        event: ProviderEvent,
        metadata_user_id: Optional[str],
        customer_id: Optional[str],
        subscription_id: Optional[str] = None,
    ) -> str:
        """
        Find the internal user an event belongs to.

        Raises:
            OrphanedEvent: no step produced a user
        """
        if metadata_user_id:
            return metadata_user_id

        if subscription_id:
            record = await self.subscription_records.get_by_subscription_id(
                subscription_id
            )
            if record:
                return record.user_id

        if not customer_id:
            raise OrphanedEvent(event.id, reason="no user metadata and no customer")

        record = await self.subscription_records.get_by_customer_id(customer_id)
        if record:
            return record.user_id

        try:
            customer = await self.gateway.get_customer(customer_id)
        except (ProviderUnavailable, ProviderRequestError) as e:
            raise OrphanedEvent(
                event.id, customer_id, reason=f"customer lookup failed: {e.message}"
            ) from e

        if customer.user_id:
            return customer.user_id
        raise OrphanedEvent(event.id, customer_id, reason="customer has no user metadata")

    async def _handle_subscription_changed(self, event: ProviderEvent) -> Handled:
        subscription = subscription_from_stripe(event.data_object)
        user_id = await self._resolve_user(
            event,
            subscription.metadata.get("user_id"),
            subscription.customer_id,
            subscription.id,
        )

        record = await self.subscription_records.ensure_record(user_id)
        if (
            map_provider_status(subscription.status) == SubscriptionStatus.CANCELED
            and record.provider_subscription_id
            and record.provider_subscription_id != subscription.id
        ):
            return Handled(
                EventOutcome.IGNORED, user_id, "superseded subscription canceled"
            )

        result = await self.reconciliation.apply_provider_subscription(
            user_id, subscription, version=event.created
        )
        await self.reconciliation.invalidate_provider_cache(subscription.id)
        return Handled(_outcome_of(result), user_id, result.reason)

    async def _handle_subscription_deleted(self, event: ProviderEvent) -> Handled:
        subscription = subscription_from_stripe(event.data_object)
        user_id = await self._resolve_user(
            event,
            subscription.metadata.get("user_id"),
            subscription.customer_id,
            subscription.id,
        )

        record = await self.subscription_records.ensure_record(user_id)
        if (
            record.provider_subscription_id
            and record.provider_subscription_id != subscription.id
        ):
            logger.info(
                f"Ignoring deletion of superseded subscription {subscription.id}",
                extra={
                    "user_id": user_id,
                    "subscription_id": subscription.id,
                    "current_subscription_id": record.provider_subscription_id,
                },
            )
            return Handled(
                EventOutcome.IGNORED, user_id, "superseded subscription deleted"
            )

        result = await self.subscription_records.downgrade_to_free(
            user_id, event.created
        )
        await self.reconciliation.invalidate_provider_cache(subscription.id)
        return Handled(_outcome_of(result), user_id, result.reason)

    async def _record_invoice_payment(
        self, event: ProviderEvent, status: PaymentStatus
    ) -> tuple[str, StripeInvoiceData, bool]:
        invoice = StripeInvoiceData.model_validate(event.data_object)
        user_id = await self._resolve_user(
            event,
            invoice.metadata.user_id or invoice.subscription_metadata.user_id,
            invoice.customer,
            invoice.subscription_id,
        )

        cents = invoice.amount_paid if status == PaymentStatus.SUCCEEDED else invoice.amount_due
        inserted = await self.payment_repo.record_payment(
            PaymentCreateModel(
                user_id=user_id,
                provider_payment_intent_id=invoice.payment_key,
                provider_invoice_id=invoice.id,
                provider_subscription_id=invoice.subscription_id,
                amount=_cents_to_amount(cents),
                currency=invoice.currency,
                status=status,
                billing_reason=invoice.billing_reason,
                invoice_url=invoice.hosted_invoice_url,
                receipt_url=invoice.receipt_url,
                paid_at=event.created if status == PaymentStatus.SUCCEEDED else None,
            )
        )
        logger.info(
            f"Recorded {status.value} payment for invoice {invoice.id}",
            extra={
                "user_id": user_id,
                "invoice_id": invoice.id,
                "amount_cents": cents,
                "inserted": inserted,
            },
        )
        return user_id, invoice, inserted

    async def _set_status(
        self,
        event: ProviderEvent,
        user_id: str,
        subscription_id: Optional[str],
        from_statuses: tuple[SubscriptionStatus, ...],
        to_status: SubscriptionStatus,
    ) -> Optional[ApplyResult]:
        record = await self.subscription_records.ensure_record(user_id)
        if (
            not subscription_id
            or record.provider_subscription_id != subscription_id
            or record.status not in from_statuses
        ):
            return None
        state = record.to_state().model_copy(update={"status": to_status})
        result = await self.subscription_records.apply_provider_state(
            user_id, state, event.created
        )
        await self.reconciliation.invalidate_provider_cache(subscription_id)
        return result

    async def _handle_payment_succeeded(self, event: ProviderEvent) -> Handled:
        user_id, invoice, inserted = await self._record_invoice_payment(
            event, PaymentStatus.SUCCEEDED
        )
        reactivated = await self._set_status(
            event,
            user_id,
            invoice.subscription_id,
            (SubscriptionStatus.PAST_DUE,),
            SubscriptionStatus.ACTIVE,
        )
        if reactivated is not None and reactivated.applied:
            logger.info(
                f"Reactivated subscription for user {user_id} after payment",
                extra={"user_id": user_id, "invoice_id": invoice.id},
            )
        applied = inserted or (reactivated is not None and reactivated.applied)
        return Handled(
            EventOutcome.APPLIED if applied else EventOutcome.IGNORED, user_id
        )

    async def _handle_payment_failed(self, event: ProviderEvent) -> Handled:
        user_id, invoice, inserted = await self._record_invoice_payment(
            event, PaymentStatus.FAILED
        )
        marked = await self._set_status(
            event,
            user_id,
            invoice.subscription_id,
            (SubscriptionStatus.ACTIVE, SubscriptionStatus.TRIALING),
            SubscriptionStatus.PAST_DUE,
        )
        if marked is not None and marked.applied:
            logger.warning(
                f"Subscription for user {user_id} is past due",
                extra={"user_id": user_id, "invoice_id": invoice.id},
            )
        applied = inserted or (marked is not None and marked.applied)
        return Handled(
            EventOutcome.APPLIED if applied else EventOutcome.IGNORED, user_id
        )

    async def _handle_checkout_completed(self, event: ProviderEvent) -> Handled:
        session = StripeCheckoutSessionData.model_validate(event.data_object)
        if session.mode not in (None, "subscription") or not session.subscription:
            return Handled(EventOutcome.IGNORED, message="not a subscription checkout")

        user_id = await self._resolve_user(
            event, session.metadata.user_id, session.customer
        )

        if session.customer:
            await self.subscription_records.attach_customer(user_id, session.customer)

        subscription = await self.gateway.get_subscription(session.subscription)
        result = await self.reconciliation.apply_provider_subscription(
            user_id,
            subscription,
            version=event.created,
            fallback_tier=self.plans.resolve_tier(session.metadata.plan_name, None),
        )
        await self.reconciliation.invalidate_provider_cache(subscription.id)

        logger.info(
            f"Checkout completed for user {user_id}",
            extra={
                "user_id": user_id,
                "session_id": session.id,
                "customer_id": session.customer,
                "subscription_id": session.subscription,
                "result": result.reason,
            },
        )
        return Handled(_outcome_of(result), user_id, result.reason)

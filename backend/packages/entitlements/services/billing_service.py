"""
Service for subscription actions that must reach the billing provider.

Checkout, portal, cancel/resume and plan changes. Provider outages propagate
as ``ProviderUnavailable``; the state Stripe returns is applied to the local
record immediately rather than waiting for the matching webhook.
"""

from typing import Optional

from common.core.config import settings
from common.core.exceptions import NotFoundError, ValidationError
from common.core.otel_axiom_exporter import get_logger, trace_span
from common.db.base import utcnow
from common.db.context import readonly
from packages.entitlements.models.domain.enums import BillingCycle, PlanTier
from packages.entitlements.models.domain.payment import PaymentRecord
from packages.entitlements.models.domain.provider import (
    ProviderInvoice,
    ProviderSubscription,
    SessionRef,
)
from packages.entitlements.models.domain.subscription import SubscriptionRecord
from packages.entitlements.providers.payment.factory import get_billing_gateway
from packages.entitlements.repositories.payment_repository import PaymentRepository
from packages.entitlements.services.plan_catalog_service import PlanCatalogService
from packages.entitlements.services.reconciliation_service import (
    ReconciliationService,
)
from packages.entitlements.services.subscription_record_service import (
    SubscriptionRecordService,
)

logger = get_logger(__name__)


class BillingService:
    """User-initiated billing actions."""

    def __init__(self):
        self.gateway = get_billing_gateway()
        self.payment_repo = PaymentRepository()
        self.plans = PlanCatalogService()
        self.subscription_records = SubscriptionRecordService()
        self.reconciliation = ReconciliationService()

    async def _require_subscription(self, user_id: str) -> SubscriptionRecord:
        record = await self.subscription_records.ensure_record(user_id)
        if not record.provider_subscription_id:
            raise NotFoundError(
                "No paid subscription found", context={"user_id": user_id}
            )
        return record

    async def _apply_returned(
        self,
        user_id: str,
        subscription: ProviderSubscription,
        fallback_tier: Optional[PlanTier] = None,
    ) -> SubscriptionRecord:
        result = await self.reconciliation.apply_provider_subscription(
            user_id,
            subscription,
            version=subscription.retrieved_at or utcnow(),
            force=True,
            fallback_tier=fallback_tier,
        )
        await self.reconciliation.invalidate_provider_cache(subscription.id)
        return result.record

    @trace_span
    async def create_checkout_session(
        self,
        user_id: str,
        plan_tier: PlanTier,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
        email: Optional[str] = None,
        name: Optional[str] = None,
        success_url: Optional[str] = None,
        cancel_url: Optional[str] = None,
    ) -> SessionRef:
        """
        Start a hosted checkout for a paid plan.

        First-time subscribers (no payments, never trialed) get the
        configured trial. Users already on a paid subscription must use
        ``change_plan`` instead.
        """
        if not plan_tier.is_paid:
            raise ValidationError("Checkout is only available for paid plans")

        price_id = self.plans.price_id_for(plan_tier, billing_cycle)
        if not price_id:
            raise ValidationError(
                f"No price configured for {plan_tier.value} ({billing_cycle.value})"
            )

        record = await self.subscription_records.ensure_record(user_id)
        if (
            record.plan_tier.is_paid
            and record.provider_subscription_id
            and record.has_access()
        ):
            raise ValidationError(
                "An active subscription already exists; change the plan instead",
                context={"user_id": user_id, "plan_tier": record.plan_tier.value},
            )

        customer = await self.gateway.create_or_get_customer(
            user_id,
            email=email,
            name=name,
            existing_customer_id=record.provider_customer_id,
        )
        if customer.created or record.provider_customer_id != customer.customer_id:
            await self.subscription_records.attach_customer(
                user_id, customer.customer_id
            )

        trial_days = None
        if (
            settings.checkout_trial_days > 0
            and record.trial_end is None
            and await self.payment_repo.count_for_user(user_id) == 0
        ):
            trial_days = settings.checkout_trial_days

        frontend = settings.frontend_url.rstrip("/")
        session = await self.gateway.create_checkout_session(
            user_id=user_id,
            price_id=price_id,
            success_url=success_url
            or f"{frontend}/billing/success?session_id={{CHECKOUT_SESSION_ID}}",
            cancel_url=cancel_url or f"{frontend}/pricing",
            plan_name=plan_tier.value,
            customer_id=customer.customer_id,
            billing_cycle=billing_cycle.value,
            trial_days=trial_days,
        )

        logger.info(
            f"Created checkout session for user {user_id}: {plan_tier.value}",
            extra={
                "user_id": user_id,
                "plan_tier": plan_tier.value,
                "billing_cycle": billing_cycle.value,
                "trial_days": trial_days,
                "session_id": session.id,
            },
        )
        return session

    @trace_span
    async def create_portal_session(
        self, user_id: str, return_url: Optional[str] = None
    ) -> SessionRef:
        record = await self.subscription_records.ensure_record(user_id)
        if not record.provider_customer_id:
            raise NotFoundError(
                "No billing account found", context={"user_id": user_id}
            )
        return await self.gateway.create_portal_session(
            record.provider_customer_id,
            return_url or f"{settings.frontend_url.rstrip('/')}/billing",
        )

    @trace_span
    async def cancel_subscription(self, user_id: str) -> SubscriptionRecord:
        """Cancel at the end of the current period; access continues until then."""
        record = await self._require_subscription(user_id)
        subscription = await self.gateway.cancel_subscription(
            record.provider_subscription_id, at_period_end=True
        )
        logger.info(
            f"User {user_id} scheduled cancellation of {subscription.id}",
            extra={"user_id": user_id, "subscription_id": subscription.id},
        )
        return await self._apply_returned(user_id, subscription, record.plan_tier)

    @trace_span
    async def resume_subscription(self, user_id: str) -> SubscriptionRecord:
        record = await self._require_subscription(user_id)
        if not record.cancel_at_period_end:
            raise ValidationError("Subscription is not scheduled for cancellation")
        subscription = await self.gateway.resume_subscription(
            record.provider_subscription_id
        )
        logger.info(
            f"User {user_id} resumed subscription {subscription.id}",
            extra={"user_id": user_id, "subscription_id": subscription.id},
        )
        return await self._apply_returned(user_id, subscription, record.plan_tier)

    @trace_span
    async def change_plan(
        self,
        user_id: str,
        plan_tier: PlanTier,
        billing_cycle: BillingCycle = BillingCycle.MONTHLY,
    ) -> SubscriptionRecord:
        """Swap a paid subscription to another paid plan or billing cycle."""
        if not plan_tier.is_paid:
            raise ValidationError(
                "Downgrading to free is done by cancelling the subscription"
            )

        record = await self._require_subscription(user_id)
        if record.plan_tier == plan_tier and record.billing_cycle == billing_cycle:
            raise ValidationError(f"Already on {plan_tier.value} ({billing_cycle.value})")

        price_id = self.plans.price_id_for(plan_tier, billing_cycle)
        if not price_id:
            raise ValidationError(
                f"No price configured for {plan_tier.value} ({billing_cycle.value})"
            )

        subscription = await self.gateway.change_plan(
            record.provider_subscription_id,
            price_id,
            metadata={
                "user_id": user_id,
                "plan_name": plan_tier.value,
                "billing_cycle": billing_cycle.value,
            },
        )
        logger.info(
            f"User {user_id} changed plan {record.plan_tier.value} -> {plan_tier.value}",
            extra={
                "user_id": user_id,
                "from_plan": record.plan_tier.value,
                "to_plan": plan_tier.value,
                "billing_cycle": billing_cycle.value,
            },
        )
        return await self._apply_returned(user_id, subscription, plan_tier)

    @trace_span
    async def list_invoices(self, user_id: str, limit: int = 10) -> list[ProviderInvoice]:
        record = await self.subscription_records.get(user_id)
        if record is None or not record.provider_customer_id:
            return []
        return await self.gateway.list_invoices(record.provider_customer_id, limit=limit)

    @trace_span
    @readonly
    async def get_payment_history(
        self, user_id: str, limit: int = 20
    ) -> list[PaymentRecord]:
        return await self.payment_repo.list_by_user(user_id, limit=limit)

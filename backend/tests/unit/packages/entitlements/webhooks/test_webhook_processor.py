"""
Unit tests for WebhookProcessor.

The billing gateway is mocked; the event log, subscription row, profile
replica and payment history are real database rows.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest
from unittest.mock import AsyncMock, patch
from sqlalchemy import func, select

from packages.entitlements.exceptions import ProviderUnavailable
from packages.entitlements.models.domain.enums import (
    EventOutcome,
    PaymentStatus,
    PlanTier,
    SubscriptionStatus,
)
from packages.entitlements.models.database.subscription import UserSubscriptionEntity
from packages.entitlements.models.domain.provider import ProviderCustomer
from packages.entitlements.repositories.billing_event_repository import (
    BillingEventRepository,
)
from packages.entitlements.repositories.payment_repository import PaymentRepository
from packages.entitlements.repositories.profile_repository import ProfileRepository
from packages.entitlements.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.entitlements.webhooks.processor import CLAIM_LEASE, WebhookProcessor


@pytest.fixture
def processor(patch_gateway):
    return WebhookProcessor()


def _now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


@patch("common.core.otel_axiom_exporter.axiom_tracer.start_as_current_span")
class TestEventAdmission:
    """Event log idempotency and claiming."""

    async def test_subscription_created_applies_plan(
        self, mock_start_span, processor, stripe_subscription, provider_event
    ):
        event = provider_event(
            "customer.subscription.created",
            stripe_subscription(user_id="user_new", plan_name="casual"),
        )

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.APPLIED
        assert result.duplicate is False
        assert result.user_id == "user_new"

        record = await SubscriptionRepository().get_by_user_id("user_new")
        assert record.plan_tier == PlanTier.CASUAL
        assert record.status == SubscriptionStatus.ACTIVE
        assert record.provider_subscription_id == "sub_test123"
        assert record.provider_updated_at == event.created

        profile = await ProfileRepository().get_by_user_id("user_new")
        assert profile.subscription["plan_tier"] == "casual"
        assert profile.subscription["provider_subscription_id"] == "sub_test123"

        stored = await BillingEventRepository().get_by_event_id(event.id)
        assert stored.processed is True
        assert stored.outcome == EventOutcome.APPLIED
        assert stored.user_id == "user_new"

    async def test_duplicate_delivery_is_acknowledged_once(
        self, mock_start_span, processor, stripe_subscription, provider_event
    ):
        event = provider_event(
            "customer.subscription.created",
            stripe_subscription(user_id="user_new", plan_name="casual"),
        )

        first = await processor.handle(event)
        with patch.object(
            processor.reconciliation, "apply_provider_subscription", AsyncMock()
        ) as apply:
            second = await processor.handle(event)

        assert first.duplicate is False
        assert second.duplicate is True
        assert second.outcome == EventOutcome.APPLIED
        apply.assert_not_called()

    async def test_event_claimed_elsewhere_is_not_processed(
        self, mock_start_span, processor, stripe_subscription, provider_event
    ):
        event = provider_event(
            "customer.subscription.created",
            stripe_subscription(user_id="user_new", plan_name="casual"),
        )
        event_repo = BillingEventRepository()
        await event_repo.record_received(event.id, event.type, {})
        assert await event_repo.claim(event.id, CLAIM_LEASE) is True

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.IGNORED
        assert result.duplicate is True
        assert result.message == "in progress"
        assert await SubscriptionRepository().get_by_user_id("user_new") is None

    async def test_unhandled_event_type_is_ignored(
        self, mock_start_span, processor, provider_event
    ):
        event = provider_event("customer.created", {"id": "cus_other"})

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.IGNORED
        assert result.message == "unhandled event type"
        stored = await BillingEventRepository().get_by_event_id(event.id)
        assert stored.processed is True


@patch("common.core.otel_axiom_exporter.axiom_tracer.start_as_current_span")
class TestSubscriptionEvents:
    """customer.subscription.* handling."""

    async def test_stale_update_is_rejected(
        self,
        mock_start_span,
        processor,
        stripe_subscription,
        provider_event,
        paid_subscription,
    ):
        event = provider_event(
            "customer.subscription.updated",
            stripe_subscription(status="past_due"),
            created=_now() - timedelta(days=10),
        )

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.IGNORED
        assert result.message == "stale"
        record = await SubscriptionRepository().get_by_user_id(paid_subscription.user_id)
        assert record.status == SubscriptionStatus.ACTIVE
        assert record.provider_updated_at == paid_subscription.provider_updated_at

    async def test_newer_update_overrides_local_state(
        self,
        mock_start_span,
        processor,
        stripe_subscription,
        provider_event,
        paid_subscription,
    ):
        event = provider_event(
            "customer.subscription.updated",
            stripe_subscription(status="active", cancel_at_period_end=True),
        )

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.APPLIED
        assert result.user_id == paid_subscription.user_id
        record = await SubscriptionRepository().get_by_user_id(paid_subscription.user_id)
        assert record.plan_tier == PlanTier.CASUAL
        assert record.cancel_at_period_end is True

    async def test_user_resolved_from_customer_metadata(
        self,
        mock_start_span,
        processor,
        patch_gateway,
        stripe_subscription,
        provider_event,
    ):
        patch_gateway.get_customer.return_value = ProviderCustomer(
            id="cus_unknown", metadata={"user_id": "user_from_customer"}
        )
        event = provider_event(
            "customer.subscription.created",
            stripe_subscription(
                subscription_id="sub_fresh", customer="cus_unknown", plan_name="hunter"
            ),
        )

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.APPLIED
        assert result.user_id == "user_from_customer"
        patch_gateway.get_customer.assert_called_once_with("cus_unknown")
        record = await SubscriptionRepository().get_by_user_id("user_from_customer")
        assert record.plan_tier == PlanTier.HUNTER

    async def test_unresolvable_user_is_orphaned(
        self, mock_start_span, processor, stripe_subscription, provider_event
    ):
        event = provider_event(
            "customer.subscription.updated",
            stripe_subscription(subscription_id="sub_ghost", customer="cus_ghost"),
        )

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.ORPHANED
        stored = await BillingEventRepository().get_by_event_id(event.id)
        assert stored.outcome == EventOutcome.ORPHANED
        assert "customer has no user metadata" in stored.error_message

    async def test_customer_lookup_failure_is_orphaned(
        self,
        mock_start_span,
        processor,
        patch_gateway,
        stripe_subscription,
        provider_event,
    ):
        patch_gateway.get_customer.side_effect = ProviderUnavailable(
            "get_customer", "timeout"
        )
        event = provider_event(
            "customer.subscription.updated",
            stripe_subscription(subscription_id="sub_ghost", customer="cus_ghost"),
        )

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.ORPHANED
        assert "customer lookup failed" in result.message

    async def test_unresolvable_plan_fails_the_event(
        self, mock_start_span, processor, stripe_subscription, provider_event
    ):
        event = provider_event(
            "customer.subscription.created",
            stripe_subscription(user_id="user_new", price_id="price_unknown"),
        )

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.FAILED
        stored = await BillingEventRepository().get_by_event_id(event.id)
        assert stored.outcome == EventOutcome.FAILED
        assert "Cannot determine plan" in stored.error_message

    async def test_subscription_deleted_downgrades_to_free(
        self,
        mock_start_span,
        processor,
        stripe_subscription,
        provider_event,
        paid_subscription,
    ):
        event = provider_event(
            "customer.subscription.deleted", stripe_subscription(status="canceled")
        )

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.APPLIED
        record = await SubscriptionRepository().get_by_user_id(paid_subscription.user_id)
        assert record.plan_tier == PlanTier.FREE
        assert record.status == SubscriptionStatus.CANCELED
        assert record.provider_subscription_id is None
        assert record.provider_customer_id == "cus_test123"
        assert record.canceled_at == event.created

        profile = await ProfileRepository().get_by_user_id(paid_subscription.user_id)
        assert profile.subscription["plan_tier"] == "free"
        assert profile.subscription["provider_subscription_id"] is None

    async def test_superseded_subscription_deletion_is_ignored(
        self,
        mock_start_span,
        processor,
        stripe_subscription,
        provider_event,
        paid_subscription,
    ):
        event = provider_event(
            "customer.subscription.deleted",
            stripe_subscription(
                subscription_id="sub_old",
                status="canceled",
                user_id=paid_subscription.user_id,
            ),
        )

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.IGNORED
        assert result.message == "superseded subscription deleted"
        record = await SubscriptionRepository().get_by_user_id(paid_subscription.user_id)
        assert record.plan_tier == PlanTier.CASUAL
        assert record.provider_subscription_id == "sub_test123"

    async def test_superseded_subscription_cancel_is_ignored(
        self,
        mock_start_span,
        processor,
        stripe_subscription,
        provider_event,
        paid_subscription,
    ):
        event = provider_event(
            "customer.subscription.updated",
            stripe_subscription(
                subscription_id="sub_old",
                status="canceled",
                user_id=paid_subscription.user_id,
            ),
        )

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.IGNORED
        assert result.message == "superseded subscription canceled"


@patch("common.core.otel_axiom_exporter.axiom_tracer.start_as_current_span")
class TestInvoiceEvents:
    """invoice.* handling and payment history."""

    async def test_failed_then_recovered_payment(
        self,
        mock_start_span,
        processor,
        stripe_invoice,
        provider_event,
        paid_subscription,
    ):
        user_id = paid_subscription.user_id

        failed = await processor.handle(
            provider_event(
                "invoice.payment_failed",
                stripe_invoice(amount_due=1999),
                event_id="evt_failed",
                created=_now() - timedelta(hours=1),
            )
        )
        record = await SubscriptionRepository().get_by_user_id(user_id)
        assert failed.outcome == EventOutcome.APPLIED
        assert record.status == SubscriptionStatus.PAST_DUE

        succeeded = await processor.handle(
            provider_event(
                "invoice.payment_succeeded",
                stripe_invoice(amount_paid=1999),
                event_id="evt_succeeded",
            )
        )
        record = await SubscriptionRepository().get_by_user_id(user_id)
        assert succeeded.outcome == EventOutcome.APPLIED
        assert record.status == SubscriptionStatus.ACTIVE

        payments = await PaymentRepository().list_by_user(user_id)
        assert len(payments) == 1
        assert payments[0].status == PaymentStatus.SUCCEEDED
        assert payments[0].amount == Decimal("19.99")
        assert payments[0].provider_invoice_id == "in_test123"

    async def test_redelivered_invoice_under_new_event_id(
        self,
        mock_start_span,
        processor,
        stripe_invoice,
        provider_event,
        paid_subscription,
    ):
        invoice = stripe_invoice(amount_paid=1999)

        first = await processor.handle(
            provider_event("invoice.paid", invoice, event_id="evt_paid_1")
        )
        second = await processor.handle(
            provider_event("invoice.payment_succeeded", invoice, event_id="evt_paid_2")
        )

        assert first.outcome == EventOutcome.APPLIED
        assert second.outcome == EventOutcome.IGNORED
        assert await PaymentRepository().count_for_user(paid_subscription.user_id) == 1

    async def test_invoice_without_payment_intent_keys_on_invoice(
        self,
        mock_start_span,
        processor,
        stripe_invoice,
        provider_event,
        paid_subscription,
    ):
        await processor.handle(
            provider_event(
                "invoice.payment_succeeded",
                stripe_invoice(invoice_id="in_zero", amount_paid=0, payment_intent=None),
            )
        )

        payment = await PaymentRepository().get_by_payment_intent_id("invoice:in_zero")
        assert payment is not None
        assert payment.amount == Decimal("0.00")

    async def test_invoice_for_unknown_customer_is_orphaned(
        self, mock_start_span, processor, stripe_invoice, provider_event, test_db
    ):
        event = provider_event(
            "invoice.payment_succeeded",
            stripe_invoice(
                customer="cus_ghost",
                subscription="sub_ghost",
                amount_paid=1999,
                payment_intent="pi_ghost",
            ),
        )

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.ORPHANED
        assert await PaymentRepository().get_by_payment_intent_id("pi_ghost") is None
        subscriptions = await test_db.execute(
            select(func.count()).select_from(UserSubscriptionEntity)
        )
        assert subscriptions.scalar() == 0
        stored = await BillingEventRepository().get_by_event_id(event.id)
        assert stored.processed is True
        assert stored.outcome == EventOutcome.ORPHANED


@patch("common.core.otel_axiom_exporter.axiom_tracer.start_as_current_span")
class TestCheckoutCompleted:
    async def test_checkout_attaches_customer_and_applies_plan(
        self,
        mock_start_span,
        processor,
        patch_gateway,
        provider_event,
        provider_subscription,
    ):
        patch_gateway.get_subscription = AsyncMock(
            return_value=provider_subscription(
                subscription_id="sub_new", customer_id="cus_new"
            )
        )
        event = provider_event(
            "checkout.session.completed",
            {
                "id": "cs_test_123",
                "mode": "subscription",
                "customer": "cus_new",
                "subscription": "sub_new",
                "metadata": {"user_id": "user_checkout", "plan_name": "hunter"},
            },
        )

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.APPLIED
        patch_gateway.get_subscription.assert_called_once_with("sub_new")
        record = await SubscriptionRepository().get_by_user_id("user_checkout")
        assert record.plan_tier == PlanTier.HUNTER
        assert record.provider_customer_id == "cus_new"
        assert record.provider_subscription_id == "sub_new"

    async def test_payment_mode_checkout_is_ignored(
        self, mock_start_span, processor, patch_gateway, provider_event
    ):
        event = provider_event(
            "checkout.session.completed",
            {"id": "cs_test_456", "mode": "payment", "customer": "cus_new"},
        )

        result = await processor.handle(event)

        assert result.outcome == EventOutcome.IGNORED
        patch_gateway.get_subscription.assert_not_called()


@patch("common.core.otel_axiom_exporter.axiom_tracer.start_as_current_span")
class TestSameEventRedelivered:
    """A second delivery of one event ID has no further side effects."""

    async def test_payment_succeeded(
        self,
        mock_start_span,
        processor,
        stripe_invoice,
        provider_event,
        paid_subscription,
    ):
        event = provider_event(
            "invoice.payment_succeeded",
            stripe_invoice(amount_paid=1999),
            event_id="evt_paid_twice",
        )

        first = await processor.handle(event)
        with patch.object(processor.payment_repo, "record_payment") as record_payment:
            second = await processor.handle(event)

        assert first.outcome == EventOutcome.APPLIED
        assert second.duplicate is True
        record_payment.assert_not_called()
        assert await PaymentRepository().count_for_user(paid_subscription.user_id) == 1

    async def test_payment_failed(
        self,
        mock_start_span,
        processor,
        stripe_invoice,
        provider_event,
        paid_subscription,
    ):
        event = provider_event(
            "invoice.payment_failed",
            stripe_invoice(amount_due=1999),
            event_id="evt_failed_twice",
        )

        first = await processor.handle(event)
        second = await processor.handle(event)

        assert first.outcome == EventOutcome.APPLIED
        assert second.duplicate is True
        payments = await PaymentRepository().list_by_user(paid_subscription.user_id)
        assert [payment.status for payment in payments] == [PaymentStatus.FAILED]
        record = await SubscriptionRepository().get_by_user_id(paid_subscription.user_id)
        assert record.status == SubscriptionStatus.PAST_DUE
        assert record.provider_updated_at == event.created

    async def test_subscription_deleted(
        self,
        mock_start_span,
        processor,
        stripe_subscription,
        provider_event,
        paid_subscription,
    ):
        event = provider_event(
            "customer.subscription.deleted",
            stripe_subscription(status="canceled"),
            event_id="evt_deleted_twice",
        )

        first = await processor.handle(event)
        with patch.object(
            processor.subscription_records, "downgrade_to_free"
        ) as downgrade:
            second = await processor.handle(event)

        assert first.outcome == EventOutcome.APPLIED
        assert second.duplicate is True
        downgrade.assert_not_called()
        record = await SubscriptionRepository().get_by_user_id(paid_subscription.user_id)
        assert record.plan_tier == PlanTier.FREE
        assert record.canceled_at == event.created

    async def test_checkout_completed(
        self,
        mock_start_span,
        processor,
        patch_gateway,
        provider_event,
        provider_subscription,
    ):
        patch_gateway.get_subscription = AsyncMock(
            return_value=provider_subscription(
                subscription_id="sub_new", customer_id="cus_new"
            )
        )
        event = provider_event(
            "checkout.session.completed",
            {
                "id": "cs_test_789",
                "mode": "subscription",
                "customer": "cus_new",
                "subscription": "sub_new",
                "metadata": {"user_id": "user_checkout", "plan_name": "hunter"},
            },
            event_id="evt_checkout_twice",
        )

        first = await processor.handle(event)
        second = await processor.handle(event)

        assert first.outcome == EventOutcome.APPLIED
        assert second.duplicate is True
        patch_gateway.get_subscription.assert_called_once_with("sub_new")
        record = await SubscriptionRepository().get_by_user_id("user_checkout")
        assert record.plan_tier == PlanTier.HUNTER

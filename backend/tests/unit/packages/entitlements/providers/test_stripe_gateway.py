"""
Unit tests for StripeBillingGateway.

The Stripe SDK calls are patched; webhook signatures are computed for real.
"""

import hashlib
import hmac
import json
import time

import pytest
import stripe
from unittest.mock import MagicMock, patch

from common.core.config import settings
from packages.entitlements.exceptions import (
    InvalidSignature,
    MalformedEvent,
    ProviderRequestError,
    ProviderUnavailable,
)
from packages.entitlements.providers.payment.stripe_gateway import (
    StripeBillingGateway,
)

WEBHOOK_SECRET = "whsec_test_secret"


def _sign(payload: bytes, secret: str = WEBHOOK_SECRET, timestamp: int = None) -> str:
    timestamp = timestamp or int(time.time())
    signed = f"{timestamp}.{payload.decode()}".encode()
    digest = hmac.new(secret.encode(), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={digest}"


def _raw_subscription(cancel_at_period_end: bool = False) -> dict:
    now = int(time.time())
    return {
        "id": "sub_test123",
        "object": "subscription",
        "customer": "cus_test123",
        "status": "active",
        "cancel_at_period_end": cancel_at_period_end,
        "items": {
            "data": [
                {
                    "id": "si_test123",
                    "current_period_start": now,
                    "current_period_end": now + 30 * 86400,
                    "price": {"id": "price_casual_monthly", "recurring": {"interval": "month"}},
                }
            ]
        },
        "metadata": {"user_id": "user_test_123", "plan_name": "casual"},
    }


@pytest.fixture
def gateway():
    return StripeBillingGateway()


@patch("common.core.otel_axiom_exporter.axiom_tracer.start_as_current_span")
class TestErrorMapping:
    """Stripe exceptions are translated at the gateway boundary."""

    @pytest.mark.parametrize(
        "error",
        [
            stripe.APIConnectionError("connection reset"),
            stripe.RateLimitError("too many requests"),
            stripe.AuthenticationError("bad key"),
            stripe.APIError("stripe is down"),
        ],
    )
    async def test_outages_are_unavailable(self, mock_start_span, gateway, error):
        with patch("stripe.Subscription.retrieve", side_effect=error):
            with pytest.raises(ProviderUnavailable) as exc_info:
                await gateway.get_subscription("sub_test123")

        assert exc_info.value.operation == "get_subscription"

    async def test_server_error_status_is_unavailable(self, mock_start_span, gateway):
        error = stripe.InvalidRequestError("upstream failure", None, http_status=503)

        with patch("stripe.Subscription.retrieve", side_effect=error):
            with pytest.raises(ProviderUnavailable):
                await gateway.get_subscription("sub_test123")

    async def test_rejected_request_keeps_code(self, mock_start_span, gateway):
        error = stripe.InvalidRequestError(
            "No such subscription: 'sub_gone'",
            "id",
            code="resource_missing",
            http_status=404,
        )

        with patch("stripe.Subscription.retrieve", side_effect=error):
            with pytest.raises(ProviderRequestError) as exc_info:
                await gateway.get_subscription("sub_gone")

        assert exc_info.value.code == "resource_missing"
        assert exc_info.value.operation == "get_subscription"

    async def test_timeout_is_unavailable(self, mock_start_span, gateway):
        gateway.timeout = 0.01

        with patch("stripe.Subscription.retrieve", side_effect=lambda *a: time.sleep(0.2)):
            with pytest.raises(ProviderUnavailable) as exc_info:
                await gateway.get_subscription("sub_test123")

        assert "timeout" in str(exc_info.value)

    async def test_health_check_reports_outage(self, mock_start_span, gateway):
        with patch("stripe.Account.retrieve", side_effect=stripe.APIConnectionError("down")):
            assert await gateway.health_check() is False
        with patch("stripe.Account.retrieve", return_value={"id": "acct_test"}):
            assert await gateway.health_check() is True


@patch("common.core.otel_axiom_exporter.axiom_tracer.start_as_current_span")
class TestGatewayCalls:
    async def test_existing_customer_is_reused(self, mock_start_span, gateway):
        with patch("stripe.Customer.create") as create:
            ref = await gateway.create_or_get_customer(
                "user_test_123", existing_customer_id="cus_existing"
            )

        create.assert_not_called()
        assert ref.customer_id == "cus_existing"
        assert ref.created is False

    async def test_new_customer_carries_user_id(self, mock_start_span, gateway):
        with patch("stripe.Customer.create", return_value=MagicMock(id="cus_new")) as create:
            ref = await gateway.create_or_get_customer("user_test_123", email="a@b.co")

        assert ref.customer_id == "cus_new"
        assert ref.created is True
        assert create.call_args.kwargs["metadata"] == {"user_id": "user_test_123"}

    async def test_checkout_with_trial(self, mock_start_span, gateway):
        session = MagicMock(id="cs_test_123", url="https://checkout.stripe.com/cs")

        with patch("stripe.checkout.Session.create", return_value=session) as create:
            ref = await gateway.create_checkout_session(
                user_id="user_test_123",
                price_id="price_casual_monthly",
                success_url="https://app/success",
                cancel_url="https://app/pricing",
                plan_name="casual",
                customer_id="cus_test123",
                trial_days=7,
            )

        params = create.call_args.kwargs
        assert ref.url == "https://checkout.stripe.com/cs"
        assert params["mode"] == "subscription"
        assert params["customer"] == "cus_test123"
        assert params["client_reference_id"] == "user_test_123"
        assert params["subscription_data"]["trial_period_days"] == 7
        assert params["subscription_data"]["metadata"]["plan_name"] == "casual"

    async def test_checkout_without_trial(self, mock_start_span, gateway):
        session = MagicMock(id="cs_test_123", url="https://checkout.stripe.com/cs")

        with patch("stripe.checkout.Session.create", return_value=session) as create:
            await gateway.create_checkout_session(
                user_id="user_test_123",
                price_id="price_casual_monthly",
                success_url="https://app/success",
                cancel_url="https://app/pricing",
                plan_name="casual",
            )

        params = create.call_args.kwargs
        assert "trial_period_days" not in params["subscription_data"]
        assert "customer" not in params

    async def test_get_subscription_normalizes(self, mock_start_span, gateway):
        with patch("stripe.Subscription.retrieve", return_value=_raw_subscription()):
            subscription = await gateway.get_subscription("sub_test123")

        assert subscription.customer_id == "cus_test123"
        assert subscription.price_id == "price_casual_monthly"
        assert subscription.billing_interval == "month"
        assert subscription.metadata["plan_name"] == "casual"
        assert subscription.retrieved_at is not None

    async def test_cancel_at_period_end(self, mock_start_span, gateway):
        with patch(
            "stripe.Subscription.modify",
            return_value=_raw_subscription(cancel_at_period_end=True),
        ) as modify:
            subscription = await gateway.cancel_subscription("sub_test123")

        modify.assert_called_once_with("sub_test123", cancel_at_period_end=True)
        assert subscription.cancel_at_period_end is True

    async def test_change_plan_swaps_first_item(self, mock_start_span, gateway):
        with patch(
            "stripe.Subscription.retrieve", return_value=_raw_subscription()
        ), patch(
            "stripe.Subscription.modify", return_value=_raw_subscription()
        ) as modify:
            await gateway.change_plan(
                "sub_test123", "price_hunter_monthly", metadata={"plan_name": "hunter"}
            )

        params = modify.call_args.kwargs
        assert params["items"] == [{"id": "si_test123", "price": "price_hunter_monthly"}]
        assert params["proration_behavior"] == "create_prorations"
        assert params["metadata"] == {"plan_name": "hunter"}


class TestVerifySignature:
    """Tests for webhook signature verification."""

    def test_valid_signature(self, gateway):
        payload = json.dumps(
            {
                "id": "evt_test123",
                "type": "customer.subscription.updated",
                "created": 1760000000,
                "data": {"object": {"id": "sub_test123"}},
            }
        ).encode()

        event = gateway.verify_signature(payload, _sign(payload), WEBHOOK_SECRET)

        assert event.id == "evt_test123"
        assert event.type == "customer.subscription.updated"
        assert event.data_object == {"id": "sub_test123"}
        assert event.created.year == 2025

    def test_wrong_secret_is_rejected(self, gateway):
        payload = json.dumps({"id": "evt_test123", "type": "invoice.paid"}).encode()

        with pytest.raises(InvalidSignature):
            gateway.verify_signature(
                payload, _sign(payload, secret="whsec_other"), WEBHOOK_SECRET
            )

    def test_tampered_payload_is_rejected(self, gateway):
        payload = json.dumps({"id": "evt_test123", "type": "invoice.paid"}).encode()
        signature = _sign(payload)
        tampered = payload.replace(b"invoice.paid", b"invoice.payment_failed")

        with pytest.raises(InvalidSignature):
            gateway.verify_signature(tampered, signature, WEBHOOK_SECRET)

    def test_event_without_type_is_malformed(self, gateway):
        payload = json.dumps({"id": "evt_test123"}).encode()

        with pytest.raises(MalformedEvent):
            gateway.verify_signature(payload, _sign(payload), WEBHOOK_SECRET)

    def test_non_json_body_is_malformed(self, gateway):
        payload = b"not json"

        with pytest.raises(MalformedEvent):
            gateway.verify_signature(payload, _sign(payload), WEBHOOK_SECRET)

    def test_event_without_creation_time_is_malformed(self, gateway):
        payload = json.dumps(
            {"id": "evt_test123", "type": "customer.subscription.updated"}
        ).encode()

        with pytest.raises(MalformedEvent):
            gateway.verify_signature(payload, _sign(payload), WEBHOOK_SECRET)


class TestHttpClient:
    def test_requests_are_bounded_by_the_call_timeout(self, monkeypatch):
        monkeypatch.setattr(settings, "stripe_request_timeout_seconds", 4.0)
        monkeypatch.setattr(stripe, "default_http_client", None)

        with patch("stripe.RequestsClient") as requests_client:
            gateway = StripeBillingGateway()

        requests_client.assert_called_once_with(timeout=4.0)
        assert stripe.default_http_client is requests_client.return_value
        assert gateway.timeout == 4.0

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from packages.entitlements.models.domain.provider import (
    CustomerRef,
    ProviderCustomer,
    SessionRef,
)

# Every module that resolves the billing gateway at construction time
GATEWAY_LOOKUPS = (
    "packages.entitlements.services.plan_catalog_service.get_billing_gateway",
    "packages.entitlements.services.reconciliation_service.get_billing_gateway",
    "packages.entitlements.services.billing_service.get_billing_gateway",
    "packages.entitlements.webhooks.processor.get_billing_gateway",
    "api.v1.routes.health.get_billing_gateway",
)


@pytest.fixture
def mock_gateway():
    """Create a mock billing gateway instance for testing."""
    gateway = AsyncMock()
    gateway.create_or_get_customer = AsyncMock(
        return_value=CustomerRef(customer_id="cus_test123", created=True)
    )
    gateway.create_checkout_session = AsyncMock(
        return_value=SessionRef(
            id="cs_test_123",
            url="https://checkout.stripe.com/mock",
            customer_id="cus_test123",
        )
    )
    gateway.create_portal_session = AsyncMock(
        return_value=SessionRef(
            id="bps_test_123",
            url="https://billing.stripe.com/mock",
            customer_id="cus_test123",
        )
    )
    gateway.get_customer = AsyncMock(
        return_value=ProviderCustomer(id="cus_test123", metadata={})
    )
    gateway.list_invoices = AsyncMock(return_value=[])
    gateway.get_price_amount = AsyncMock(return_value=None)
    gateway.health_check = AsyncMock(return_value=True)
    # Signature verification is synchronous
    gateway.verify_signature = MagicMock()
    return gateway


@pytest.fixture
def patch_gateway(mock_gateway):
    """Route every billing gateway lookup to ``mock_gateway``."""
    patchers = [patch(target, return_value=mock_gateway) for target in GATEWAY_LOOKUPS]
    for patcher in patchers:
        patcher.start()
    yield mock_gateway
    for patcher in reversed(patchers):
        patcher.stop()


@pytest.fixture
def mock_lock_provider():
    """Create a mock lock provider instance for testing."""
    lock = AsyncMock()
    lock.acquire_lock = AsyncMock(return_value="test-lock-token")
    lock.release_lock = AsyncMock(return_value=True)
    lock.disconnect = AsyncMock(return_value=None)
    return lock


@pytest.fixture
def mock_span():
    """Create a mock span instance for testing telemetry."""
    span = MagicMock()
    span.__enter__ = MagicMock(return_value=span)
    span.__exit__ = MagicMock(return_value=None)
    span.__aenter__ = AsyncMock(return_value=span)
    span.__aexit__ = AsyncMock(return_value=None)
    return span


@pytest.fixture
def mock_start_span(mock_span):
    """Create a mock start_span function that returns mock_span."""
    with patch(
        "common.core.otel_axiom_exporter.axiom_tracer.start_as_current_span",
        return_value=mock_span,
    ) as mock:
        yield mock

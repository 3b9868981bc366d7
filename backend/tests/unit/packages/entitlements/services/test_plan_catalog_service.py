"""
Unit tests for PlanCatalogService.
"""

import pytest
from unittest.mock import AsyncMock, patch

from packages.entitlements.exceptions import ProviderUnavailable
from packages.entitlements.models.domain.enums import BillingCycle, PlanTier
from packages.entitlements.services.plan_catalog_service import (
    PlanCatalogService,
    format_price,
)
from tests.unit.packages.entitlements.conftest import (
    CASUAL_MONTHLY_PRICE,
    CASUAL_YEARLY_PRICE,
    HUNTER_MONTHLY_PRICE,
    HUNTER_YEARLY_PRICE,
)


@pytest.fixture
def plan_service(patch_gateway, configured_prices):
    return PlanCatalogService()


def test_format_price():
    assert format_price(0) == "$0"
    assert format_price(1999) == "$19.99"
    assert format_price(2000) == "$20"


class TestPriceMapping:
    def test_price_id_for(self, plan_service):
        assert plan_service.price_id_for(PlanTier.CASUAL) == CASUAL_MONTHLY_PRICE
        assert (
            plan_service.price_id_for(PlanTier.HUNTER, BillingCycle.YEARLY)
            == HUNTER_YEARLY_PRICE
        )
        assert plan_service.price_id_for(PlanTier.FREE) is None

    def test_reverse_lookup(self, plan_service):
        assert plan_service.tier_for_price_id(CASUAL_YEARLY_PRICE) == PlanTier.CASUAL
        assert plan_service.cycle_for_price_id(CASUAL_YEARLY_PRICE) == BillingCycle.YEARLY
        assert plan_service.tier_for_price_id("price_unknown") is None
        assert plan_service.tier_for_price_id(None) is None

    def test_resolve_tier_prefers_price(self, plan_service):
        assert plan_service.resolve_tier("casual", HUNTER_MONTHLY_PRICE) == PlanTier.HUNTER
        assert plan_service.resolve_tier("Hunter", "price_unknown") == PlanTier.HUNTER
        assert plan_service.resolve_tier("platinum", None) is None
        assert plan_service.resolve_tier(None, None) is None

    def test_unconfigured_prices_resolve_nothing(self, patch_gateway):
        service = PlanCatalogService()

        assert service.price_id_for(PlanTier.CASUAL) is None
        assert service.tier_for_price_id("") is None


@patch("common.core.otel_axiom_exporter.axiom_tracer.start_as_current_span")
class TestPlanListing:
    """Tests for the public plan catalog."""

    async def test_get_all_plans_uses_fallback_prices(
        self, mock_start_span, plan_service
    ):
        response = await plan_service.get_all_plans()

        by_tier = {plan.tier: plan for plan in response.plans}
        assert list(by_tier) == [PlanTier.FREE, PlanTier.CASUAL, PlanTier.HUNTER]
        assert by_tier[PlanTier.FREE].price_formatted == "$0"
        assert by_tier[PlanTier.CASUAL].price_cents == 1999
        assert by_tier[PlanTier.CASUAL].price_formatted == "$19.99"
        assert by_tier[PlanTier.CASUAL].stripe_price_id == CASUAL_MONTHLY_PRICE
        assert by_tier[PlanTier.HUNTER].yearly_price_cents == 34990
        assert by_tier[PlanTier.HUNTER].limits.weekly_discovery_limit == 100
        assert "Unlimited job imports / month" in by_tier[PlanTier.HUNTER].features

    async def test_stripe_prices_override_catalog(
        self, mock_start_span, plan_service, patch_gateway
    ):
        patch_gateway.get_price_amount = AsyncMock(
            side_effect=lambda price_id: 2499 if price_id == CASUAL_MONTHLY_PRICE else None
        )

        plan = await plan_service.get_plan(PlanTier.CASUAL)

        assert plan.price_cents == 2499
        assert plan.price_formatted == "$24.99"
        assert plan.yearly_price_cents == 19990

    async def test_provider_outage_falls_back(
        self, mock_start_span, plan_service, patch_gateway
    ):
        patch_gateway.get_price_amount = AsyncMock(
            side_effect=ProviderUnavailable("get_price", "timeout")
        )

        plan = await plan_service.get_plan(PlanTier.HUNTER)

        assert plan.price_cents == 3499

    async def test_prices_are_cached(
        self, mock_start_span, plan_service, patch_gateway, memory_cache
    ):
        await plan_service.get_all_plans()
        calls = patch_gateway.get_price_amount.await_count

        await plan_service.get_all_plans()

        assert calls == 4
        assert patch_gateway.get_price_amount.await_count == calls
        assert await memory_cache.get("plans:stripe_prices") == {
            CASUAL_MONTHLY_PRICE: 1999,
            CASUAL_YEARLY_PRICE: 19990,
            HUNTER_MONTHLY_PRICE: 3499,
            HUNTER_YEARLY_PRICE: 34990,
        }

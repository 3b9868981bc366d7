"""Service for retrieving plan information."""

from typing import Optional

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger, trace_span
from common.providers.caching.decorators import cache
from packages.entitlements.cache_keys import plan_prices_key
from packages.entitlements.exceptions import ProviderRequestError, ProviderUnavailable
from packages.entitlements.models.domain.enums import BillingCycle, PlanTier
from packages.entitlements.models.domain.plans import (
    PLAN_METADATA,
    PLAN_PRICES_CENTS,
    UNLIMITED,
    PlanInfo,
    PlanLimits,
    PlansResponse,
    get_plan_limits,
)
from packages.entitlements.providers.payment.factory import get_billing_gateway

logger = get_logger(__name__)


def format_price(price_cents: int) -> str:
    price_dollars = price_cents / 100
    if price_cents == 0:
        return "$0"
    if price_dollars == int(price_dollars):
        return f"${int(price_dollars)}"
    return f"${price_dollars:.2f}"


class PlanCatalogService:
    """Read-only plan catalog: limits, prices and Stripe price IDs per tier."""

    def __init__(self):
        self.gateway = get_billing_gateway()
        self._price_ids: dict[tuple[PlanTier, BillingCycle], str] = {
            (PlanTier.CASUAL, BillingCycle.MONTHLY): settings.stripe_price_id_casual_monthly,
            (PlanTier.CASUAL, BillingCycle.YEARLY): settings.stripe_price_id_casual_yearly,
            (PlanTier.HUNTER, BillingCycle.MONTHLY): settings.stripe_price_id_hunter_monthly,
            (PlanTier.HUNTER, BillingCycle.YEARLY): settings.stripe_price_id_hunter_yearly,
        }

    def get_plan_limits(self, tier: PlanTier) -> PlanLimits:
        return get_plan_limits(tier)

    def price_id_for(
        self, tier: PlanTier, billing_cycle: BillingCycle = BillingCycle.MONTHLY
    ) -> Optional[str]:
        return self._price_ids.get((tier, billing_cycle)) or None

    def tier_for_price_id(self, price_id: Optional[str]) -> Optional[PlanTier]:
        if not price_id:
            return None
        for (tier, _cycle), configured in self._price_ids.items():
            if configured and configured == price_id:
                return tier
        return None

    def cycle_for_price_id(self, price_id: Optional[str]) -> Optional[BillingCycle]:
        if not price_id:
            return None
        for (_tier, cycle), configured in self._price_ids.items():
            if configured and configured == price_id:
                return cycle
        return None

    def resolve_tier(
        self, plan_name: Optional[str], price_id: Optional[str]
    ) -> Optional[PlanTier]:
        """Plan tier from the subscription price, else from metadata ``plan_name``."""
        by_price = self.tier_for_price_id(price_id)
        if by_price is not None:
            return by_price
        if plan_name:
            try:
                return PlanTier(plan_name.lower())
            except ValueError:
                logger.warning(f"Unknown plan name in metadata: {plan_name}")
        return None

    @trace_span
    async def get_all_plans(self) -> PlansResponse:
        """Get all available plans with pricing and limits."""
        stripe_prices = await self._get_stripe_prices()
        return PlansResponse(
            plans=[self._build_plan_info(tier, stripe_prices) for tier in PlanTier]
        )

    @trace_span
    async def get_plan(self, tier: PlanTier) -> PlanInfo:
        stripe_prices = await self._get_stripe_prices()
        return self._build_plan_info(tier, stripe_prices)

    def _build_plan_info(self, tier: PlanTier, stripe_prices: dict[str, int]) -> PlanInfo:
        metadata = PLAN_METADATA[tier]
        limits = get_plan_limits(tier)

        monthly_id = self.price_id_for(tier, BillingCycle.MONTHLY)
        yearly_id = self.price_id_for(tier, BillingCycle.YEARLY)
        price_cents = stripe_prices.get(monthly_id or "", PLAN_PRICES_CENTS[tier]["monthly"])
        yearly_cents = stripe_prices.get(yearly_id or "", PLAN_PRICES_CENTS[tier]["yearly"])

        return PlanInfo(
            tier=tier,
            name=metadata["name"],
            description=metadata["description"],
            price_cents=price_cents,
            yearly_price_cents=yearly_cents,
            price_formatted=format_price(price_cents),
            billing_period="month",
            stripe_price_id=monthly_id,
            stripe_yearly_price_id=yearly_id,
            limits=limits,
            features=self._build_features_list(limits),
        )

    def _build_features_list(self, limits: PlanLimits) -> list[str]:
        """Build human-readable features list from limits."""

        def amount(value: int, label: str) -> Optional[str]:
            if value == UNLIMITED:
                return f"Unlimited {label}"
            if value == 0:
                return None
            return f"{value:,} {label}"

        features = [
            amount(limits.resume_uploads, "resume uploads / month"),
            amount(limits.resume_analysis, "resume analyses / month"),
            amount(limits.job_imports, "job imports / month"),
            amount(limits.resume_tailoring, "tailored resumes / month"),
            amount(limits.recruiter_unlocks, "recruiter unlocks / month"),
        ]
        if limits.ai_search_slots:
            features.append(
                f"{limits.ai_search_slots} active AI job search, "
                f"{limits.weekly_discovery_limit} jobs / week"
            )
        if limits.ai_assistant:
            features.append(
                f"AI assistant ({limits.ai_conversations} conversations, "
                f"{limits.ai_messages} messages / month)"
            )
        return [feature for feature in features if feature]

    @trace_span
    async def _get_stripe_prices(self) -> dict[str, int]:
        """
        Fetch prices from Stripe.

        Returns dict mapping price_id -> amount in cents.
        Cached for 1 hour since prices rarely change.
        """
        return await self._fetch_stripe_prices_cached()

    @cache(model_type=dict, ttl=3600, key_generator=plan_prices_key)
    async def _fetch_stripe_prices_cached(self) -> dict[str, int]:
        prices = {}

        for (tier, cycle), price_id in self._price_ids.items():
            if not price_id:
                continue

            try:
                amount = await self.gateway.get_price_amount(price_id)
            except (ProviderUnavailable, ProviderRequestError) as e:
                logger.warning(
                    f"Failed to fetch Stripe price {price_id}: {e}",
                    extra={"price_id": price_id, "error": str(e)},
                )
                amount = None

            # Fall back to the catalog price
            prices[price_id] = (
                amount if amount is not None else PLAN_PRICES_CENTS[tier][cycle.value]
            )

        return prices

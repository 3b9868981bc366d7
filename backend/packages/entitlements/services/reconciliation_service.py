"""
User-facing reconciliation of subscription state.

Provider state (status, period dates, cancellation) always overrides the
local record. Reads refresh paid subscriptions opportunistically, fall back
to the persisted record when the provider is unreachable, and repair any
drift between the row and the profile replica.
"""

from datetime import datetime
from typing import Optional

from common.core.otel_axiom_exporter import get_logger, trace_span
from common.db.base import utcnow
from common.providers.caching.decorators import cache
from common.providers.caching.factory import get_cache_provider
from packages.entitlements.cache_keys import provider_subscription_key
from packages.entitlements.exceptions import ProviderRequestError, ProviderUnavailable
from packages.entitlements.models.domain.enums import PlanTier, SubscriptionStatus
from packages.entitlements.models.domain.plans import PlanLimits, get_plan_limits
from packages.entitlements.models.domain.provider import ProviderSubscription
from packages.entitlements.models.domain.snapshot import SubscriptionSnapshot
from packages.entitlements.models.domain.subscription import (
    ApplyResult,
    SubscriptionRecord,
)
from packages.entitlements.providers.payment.factory import get_billing_gateway
from packages.entitlements.services.plan_catalog_service import PlanCatalogService
from packages.entitlements.services.provider_state import (
    build_subscription_state,
    map_provider_status,
)
from packages.entitlements.services.slot_limiter_service import SlotLimiterService
from packages.entitlements.services.subscription_record_service import (
    SubscriptionRecordService,
    effective_tier,
)
from packages.entitlements.services.usage_ledger_service import UsageLedgerService
from packages.entitlements.services.weekly_discovery_service import (
    WeeklyDiscoveryService,
)

logger = get_logger(__name__)

# Provider subscription reads are cached briefly; webhooks invalidate the key
PROVIDER_SUBSCRIPTION_TTL = 60


def _is_missing(error: ProviderRequestError) -> bool:
    return error.code == "resource_missing"


class ReconciliationService:
    """Sync and composed reads of a user's entitlement state."""

    def __init__(self):
        self.gateway = get_billing_gateway()
        self.subscription_records = SubscriptionRecordService()
        self.usage = UsageLedgerService()
        self.weekly_discovery = WeeklyDiscoveryService()
        self.slots = SlotLimiterService()
        self.plans = PlanCatalogService()

    def get_plan_limits(self, plan_tier: PlanTier) -> PlanLimits:
        return get_plan_limits(plan_tier)

    @cache(
        model_type=ProviderSubscription,
        ttl=PROVIDER_SUBSCRIPTION_TTL,
        key_generator=provider_subscription_key,
    )
    async def _fetch_subscription_cached(
        self, subscription_id: str
    ) -> ProviderSubscription:
        return await self.gateway.get_subscription(subscription_id)

    @trace_span
    async def invalidate_provider_cache(self, subscription_id: Optional[str]) -> None:
        if not subscription_id:
            return
        try:
            await get_cache_provider().delete(provider_subscription_key(subscription_id))
        except Exception as e:
            logger.warning(
                f"Failed to invalidate provider subscription cache: {e}",
                extra={"subscription_id": subscription_id, "error": str(e)},
            )

    @trace_span
    async def apply_provider_subscription(
        self,
        user_id: str,
        subscription: ProviderSubscription,
        version: Optional[datetime],
        force: bool = False,
        fallback_tier: Optional[PlanTier] = None,
    ) -> ApplyResult:
        """
        Apply a provider subscription object to the user's record.

        Canceled subscriptions downgrade the user to free. The plan tier comes
        from the price or metadata, else ``fallback_tier``, else the tier
        already on record.
        """
        if map_provider_status(subscription.status) == SubscriptionStatus.CANCELED:
            return await self.subscription_records.downgrade_to_free(
                user_id, version, force=force
            )

        tier = self.plans.resolve_tier(
            subscription.metadata.get("plan_name"), subscription.price_id
        )
        if tier is None:
            tier = fallback_tier
        if tier is None:
            current = await self.subscription_records.ensure_record(user_id)
            tier = current.plan_tier if current.plan_tier.is_paid else None
        if tier is None:
            raise ValueError(
                f"Cannot determine plan for subscription {subscription.id} "
                f"(price {subscription.price_id})"
            )

        state = build_subscription_state(subscription, tier)
        return await self.subscription_records.apply_provider_state(
            user_id, state, version, force=force
        )

    async def _refresh_from_provider(
        self, user_id: str, record: SubscriptionRecord, use_cache: bool
    ) -> ApplyResult:
        """
        Read the provider subscription and apply it.

        A cached copy may predate a webhook already applied, so it goes
        through the version guard. Only a fresh read overwrites unconditionally.
        """
        try:
            if use_cache:
                subscription = await self._fetch_subscription_cached(
                    record.provider_subscription_id
                )
            else:
                subscription = await self.gateway.get_subscription(
                    record.provider_subscription_id
                )
        except ProviderRequestError as e:
            if not _is_missing(e):
                raise
            logger.warning(
                f"Provider subscription {record.provider_subscription_id} no longer "
                f"exists; downgrading user {user_id}",
                extra={
                    "user_id": user_id,
                    "subscription_id": record.provider_subscription_id,
                },
            )
            return await self.subscription_records.downgrade_to_free(
                user_id, utcnow(), force=True
            )

        return await self.apply_provider_subscription(
            user_id,
            subscription,
            version=subscription.retrieved_at or utcnow(),
            force=not use_cache,
        )

    @trace_span
    async def sync_from_provider(self, user_id: str) -> SubscriptionSnapshot:
        """
        Authoritative overwrite of both copies from the billing provider.

        A sync with nothing changed on the provider writes nothing.

        Raises:
            ProviderUnavailable: the provider could not be reached
        """
        record = await self.subscription_records.ensure_record(user_id)
        source = "persisted"

        if record.provider_subscription_id:
            result = await self._refresh_from_provider(user_id, record, use_cache=False)
            await self.invalidate_provider_cache(record.provider_subscription_id)
            source = "provider"
            logger.info(
                f"Synced subscription for user {user_id} from provider: {result.reason}",
                extra={"user_id": user_id, "result": result.reason},
            )

        repaired = await self.subscription_records.detect_and_repair_drift(user_id)
        return await self._compose(user_id, source=source, drift_repaired=repaired)

    @trace_span
    async def get_current_subscription(self, user_id: str) -> SubscriptionSnapshot:
        """
        Composed snapshot: record, plan limits, usage, weekly discovery and slots.

        Never fails because of the provider; falls back to the persisted record.
        """
        record = await self.subscription_records.ensure_record(user_id)
        source = "persisted"

        if (
            record.plan_tier.is_paid
            and record.provider_customer_id
            and record.provider_subscription_id
        ):
            try:
                result = await self._refresh_from_provider(
                    user_id, record, use_cache=True
                )
                if result.reason != "stale":
                    source = "provider"
            except (ProviderUnavailable, ProviderRequestError) as e:
                logger.warning(
                    f"Provider refresh failed for user {user_id}; "
                    f"using persisted subscription: {e}",
                    extra={"user_id": user_id, "error": str(e)},
                )

        repaired = await self.subscription_records.detect_and_repair_drift(user_id)
        return await self._compose(user_id, source=source, drift_repaired=repaired)

    async def _compose(
        self, user_id: str, source: str, drift_repaired: bool
    ) -> SubscriptionSnapshot:
        record = await self.subscription_records.get(user_id)
        limits = get_plan_limits(effective_tier(record))

        usage = await self.usage.get_usage_snapshot(user_id)
        weekly = await self.weekly_discovery.get_current_weekly_stats(
            user_id, limits.weekly_discovery_limit
        )
        slots = await self.slots.check_slot_availability(user_id)

        return SubscriptionSnapshot(
            subscription=record,
            limits=limits,
            usage=usage,
            weekly_discovery=weekly,
            slots=slots,
            source=source,
            drift_repaired=drift_repaired,
        )

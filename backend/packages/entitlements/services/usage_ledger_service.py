"""
Service for the monthly usage ledger.

Counters live in ``usage_ledger`` keyed by (user, first day of the UTC
month). Increments are a single conditional UPDATE, so a quota can never be
overrun by concurrent requests. The profile's usage block is a display cache
refreshed after each increment.
"""

from datetime import date, datetime, timezone
from typing import Any, Optional

from common.core.config import settings
from common.core.exceptions import ValidationError
from common.core.otel_axiom_exporter import get_logger, trace_span
from common.db.base import utcnow
from common.db.context import readonly, transactional
from packages.entitlements.exceptions import QuotaExceeded
from packages.entitlements.models.domain.enums import (
    PlanTier,
    UsageFeature,
    UsageWarningLevel,
)
from packages.entitlements.models.domain.plans import (
    get_feature_limit,
    is_unlimited,
    recommended_plan_for,
)
from packages.entitlements.models.domain.usage import (
    CRITICAL_THRESHOLD,
    WARNING_THRESHOLD,
    BulkTrackResult,
    FeatureUsage,
    LimitCheck,
    RolloverResult,
    TrackItem,
    TrackResult,
    UsageLedgerEntry,
    UsagePeriod,
    UsageSnapshot,
    UsageWarning,
)
from packages.entitlements.repositories.profile_repository import ProfileRepository
from packages.entitlements.repositories.usage_repository import UsageRepository
from packages.entitlements.services.subscription_record_service import (
    SubscriptionRecordService,
)

logger = get_logger(__name__)

ROLLOVER_BATCH_SIZE = 200


def period_for(moment: Optional[datetime] = None) -> date:
    """First day of the UTC calendar month containing ``moment``."""
    moment = moment or utcnow()
    if moment.tzinfo is not None:
        moment = moment.astimezone(timezone.utc)
    return date(moment.year, moment.month, 1)


def _percentage(used: int, limit: int) -> float:
    if is_unlimited(limit):
        return 0.0
    if limit <= 0:
        return 100.0 if used > 0 else 0.0
    return round(used / limit * 100, 1)


class UsageLedgerService:
    """Quota checks and metering for monthly features."""

    def __init__(self):
        self.usage_repo = UsageRepository()
        self.profile_repo = ProfileRepository()
        self.subscription_records = SubscriptionRecordService()

    async def _current_count(
        self, user_id: str, feature: UsageFeature, period: date
    ) -> int:
        entry = await self.usage_repo.get_entry(user_id, period)
        return getattr(entry, feature.value) if entry else 0

    @trace_span
    async def check_limit(
        self,
        user_id: str,
        feature: UsageFeature,
        quantity: int = 1,
        now: Optional[datetime] = None,
    ) -> LimitCheck:
        """Would ``quantity`` more uses of ``feature`` fit in this month's quota?"""
        tier = await self.subscription_records.get_effective_tier(user_id)
        limit = get_feature_limit(tier, feature)
        current = await self._current_count(user_id, feature, period_for(now))

        if is_unlimited(limit):
            return LimitCheck(
                allowed=True,
                feature=feature,
                plan_tier=tier,
                current=current,
                limit=limit,
                remaining=-1,
                unlimited=True,
            )

        return LimitCheck(
            allowed=current + quantity <= limit,
            feature=feature,
            plan_tier=tier,
            current=current,
            limit=limit,
            remaining=max(0, limit - current),
        )

    def _quota_exceeded(self, check: LimitCheck) -> QuotaExceeded:
        recommended = self.get_recommended_plan(check.feature)
        logger.info(
            f"Quota exceeded for user feature {check.feature.value}: "
            f"{check.current}/{check.limit}",
            extra={
                "feature": check.feature.value,
                "plan_tier": check.plan_tier.value,
                "current": check.current,
                "limit": check.limit,
            },
        )
        return QuotaExceeded(
            feature=check.feature.value,
            current=check.current,
            limit=check.limit,
            remaining=check.remaining,
            recommended_plan=recommended.value if recommended else None,
            message=check.get_user_message(),
        )

    @trace_span
    async def track(
        self,
        user_id: str,
        feature: UsageFeature,
        quantity: int = 1,
        metadata: Optional[dict[str, Any]] = None,
        now: Optional[datetime] = None,
    ) -> UsageSnapshot:
        """
        Record ``quantity`` uses of ``feature``.

        Raises:
            QuotaExceeded: the quota would be crossed; nothing is written
        """
        if quantity < 1:
            raise ValidationError("Quantity must be at least 1")

        check = await self.check_limit(user_id, feature, quantity, now=now)
        if not check.allowed:
            raise self._quota_exceeded(check)

        period = period_for(now)
        await self.usage_repo.ensure_period(user_id, period)
        incremented = await self.usage_repo.increment_if_below_limit(
            user_id, period, feature, quantity, check.limit
        )
        if not incremented:
            # Lost a race against a concurrent increment
            raise self._quota_exceeded(
                await self.check_limit(user_id, feature, quantity, now=now)
            )

        logger.info(
            f"Tracked {quantity} {feature.value} for user {user_id}",
            extra={
                "user_id": user_id,
                "feature": feature.value,
                "quantity": quantity,
                "period": period.isoformat(),
                "metadata": metadata or {},
            },
        )

        snapshot = await self.get_usage_snapshot(user_id, now=now)
        await self._refresh_usage_cache(user_id, snapshot)
        return snapshot

    @trace_span
    async def bulk_track(
        self, user_id: str, items: list[TrackItem], now: Optional[datetime] = None
    ) -> BulkTrackResult:
        """Track each item independently; one rejection does not stop the rest."""
        results = []
        for item in items:
            try:
                snapshot = await self.track(
                    user_id, item.feature, item.quantity, item.metadata, now=now
                )
                results.append(
                    TrackResult(
                        feature=item.feature,
                        success=True,
                        used=snapshot.used(item.feature),
                    )
                )
            except (QuotaExceeded, ValidationError) as e:
                results.append(
                    TrackResult(feature=item.feature, success=False, error=e.message)
                )
        return BulkTrackResult(results=results)

    @trace_span
    async def get_usage_snapshot(
        self, user_id: str, now: Optional[datetime] = None
    ) -> UsageSnapshot:
        """All counters for the current period with limits and percentages."""
        tier = await self.subscription_records.get_effective_tier(user_id)
        period = period_for(now)
        entry = await self.usage_repo.get_entry(user_id, period)

        features = {}
        for feature in UsageFeature:
            used = getattr(entry, feature.value) if entry else 0
            limit = get_feature_limit(tier, feature)
            unlimited = is_unlimited(limit)
            features[feature.value] = FeatureUsage(
                feature=feature,
                used=used,
                limit=limit,
                remaining=-1 if unlimited else max(0, limit - used),
                percentage=_percentage(used, limit),
                unlimited=unlimited,
            )

        return UsageSnapshot(
            user_id=user_id, plan_tier=tier, period=period, features=features
        )

    @trace_span
    async def get_usage_warnings(
        self, user_id: str, now: Optional[datetime] = None
    ) -> list[UsageWarning]:
        """Features at or above 80% of quota; 95% and above is critical."""
        snapshot = await self.get_usage_snapshot(user_id, now=now)
        warnings = []
        for usage in snapshot.features.values():
            if usage.unlimited or usage.limit <= 0:
                continue
            if usage.percentage >= CRITICAL_THRESHOLD:
                level = UsageWarningLevel.CRITICAL
            elif usage.percentage >= WARNING_THRESHOLD:
                level = UsageWarningLevel.WARNING
            else:
                continue
            warnings.append(
                UsageWarning(
                    feature=usage.feature,
                    level=level,
                    used=usage.used,
                    limit=usage.limit,
                    percentage=usage.percentage,
                    recommended_plan=self.get_recommended_plan(usage.feature),
                )
            )
        return warnings

    def get_recommended_plan(self, feature: UsageFeature) -> PlanTier:
        return recommended_plan_for(feature)

    @trace_span
    @readonly
    async def get_usage_history(
        self, user_id: str, months: int = 12, now: Optional[datetime] = None
    ) -> list[UsagePeriod]:
        """The current period followed by archived periods, newest first."""
        current = period_for(now)
        entries = await self.usage_repo.list_by_user(user_id, limit=months)

        history = [
            UsagePeriod(
                period=entry.period,
                counters=entry.counters(),
                archived=entry.archived_at is not None,
                archived_at=entry.archived_at,
            )
            for entry in entries
        ]
        if not any(item.period == current for item in history):
            history.insert(
                0,
                UsagePeriod(
                    period=current,
                    counters={feature.value: 0 for feature in UsageFeature},
                ),
            )
        return history[:months]

    async def _refresh_usage_cache(self, user_id: str, snapshot: UsageSnapshot) -> None:
        try:
            await self.profile_repo.merge_usage(
                user_id,
                {
                    "period": snapshot.period.isoformat(),
                    "counters": {
                        name: usage.used for name, usage in snapshot.features.items()
                    },
                },
            )
        except Exception as e:
            logger.warning(
                f"Failed to refresh usage display cache for user {user_id}: {e}",
                extra={"user_id": user_id, "error": str(e)},
            )

    @transactional
    async def _archive_entry(
        self, entry: UsageLedgerEntry, current: date, retention: int
    ) -> bool:
        if not await self.usage_repo.mark_archived(entry.id):
            return False
        await self.profile_repo.append_usage_history(
            entry.user_id,
            {
                "period": entry.period.isoformat(),
                "counters": entry.counters(),
                "archived_at": utcnow().isoformat(),
            },
            retention,
        )
        await self.usage_repo.ensure_period(entry.user_id, current)
        await self.profile_repo.merge_usage(
            entry.user_id,
            {
                "period": current.isoformat(),
                "counters": {feature.value: 0 for feature in UsageFeature},
            },
        )
        return True

    @trace_span
    async def run_monthly_rollover(self, now: Optional[datetime] = None) -> RolloverResult:
        """
        Archive every ledger row from a past month and open the current one.

        Each row is handled in its own transaction. Failures are counted and
        logged; the rows stay unarchived and are retried by the next sweep.
        """
        current = period_for(now)
        retention = settings.usage_history_retention
        result = RolloverResult(reset_date=current)
        failed_ids: set[int] = set()

        logger.info(f"Starting monthly usage rollover for period {current.isoformat()}")

        while True:
            batch = [
                entry
                for entry in await self.usage_repo.list_stale(
                    current, limit=ROLLOVER_BATCH_SIZE + len(failed_ids)
                )
                if entry.id not in failed_ids
            ]
            if not batch:
                break

            for entry in batch:
                result.total_processed += 1
                try:
                    if await self._archive_entry(entry, current, retention):
                        result.reset_count += 1
                except Exception as e:
                    failed_ids.add(entry.id)
                    result.error_count += 1
                    logger.error(
                        f"Usage rollover failed for user {entry.user_id}: {e}",
                        extra={
                            "user_id": entry.user_id,
                            "period": entry.period.isoformat(),
                            "error": str(e),
                        },
                    )

        logger.info(
            f"Monthly usage rollover complete: {result.reset_count} reset, "
            f"{result.error_count} errors",
            extra=result.model_dump(mode="json"),
        )
        return result

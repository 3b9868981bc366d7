"""
Service for the reconciled subscription record.

The ``user_subscriptions`` row is the only copy written directly. The
profile document is a replica refreshed by ``replicate_to_profile`` after
every row write, and repaired from the row whenever a read finds the two
disagreeing.
"""

from datetime import datetime
from typing import Any, Optional

from common.core.otel_axiom_exporter import get_logger, trace_span
from common.db.base import utcnow
from packages.entitlements.exceptions import DataIntegrityWarning
from packages.entitlements.models.domain.enums import PlanTier, SubscriptionStatus
from packages.entitlements.models.domain.subscription import (
    RECORD_FIELDS,
    ApplyResult,
    SubscriptionRecord,
    SubscriptionState,
)
from packages.entitlements.repositories.profile_repository import ProfileRepository
from packages.entitlements.repositories.subscription_repository import (
    SubscriptionRepository,
)
from packages.entitlements.services.provider_state import free_state

logger = get_logger(__name__)


def effective_tier(record: Optional[SubscriptionRecord]) -> PlanTier:
    """Tier whose limits apply: paid tiers only while the status grants access."""
    if record is None or not record.has_access():
        return PlanTier.FREE
    return record.plan_tier


def _comparable(document: dict[str, Any]) -> dict[str, Any]:
    return {field: document.get(field) for field in RECORD_FIELDS}


class SubscriptionRecordService:
    """Designated writer for a user's subscription state."""

    def __init__(self):
        self.subscription_repo = SubscriptionRepository()
        self.profile_repo = ProfileRepository()

    @trace_span
    async def get(self, user_id: str) -> Optional[SubscriptionRecord]:
        return await self.subscription_repo.get_by_user_id(user_id)

    @trace_span
    async def get_by_customer_id(self, customer_id: str) -> Optional[SubscriptionRecord]:
        return await self.subscription_repo.get_by_customer_id(customer_id)

    @trace_span
    async def get_by_subscription_id(
        self, subscription_id: str
    ) -> Optional[SubscriptionRecord]:
        return await self.subscription_repo.get_by_subscription_id(subscription_id)

    @trace_span
    async def get_effective_tier(self, user_id: str) -> PlanTier:
        return effective_tier(await self.get(user_id))

    @trace_span
    async def ensure_record(self, user_id: str) -> SubscriptionRecord:
        """Return the user's record, creating the free/active default on first touch."""
        created = await self.subscription_repo.create_if_absent(
            user_id, SubscriptionState.free()
        )
        if created:
            logger.info(
                f"Created default subscription record for user {user_id}",
                extra={"user_id": user_id},
            )
            await self.replicate_to_profile(user_id)
        return await self.subscription_repo.get_by_user_id(user_id)

    @trace_span
    async def apply_provider_state(
        self,
        user_id: str,
        state: SubscriptionState,
        version: Optional[datetime],
        force: bool = False,
    ) -> ApplyResult:
        """
        Write provider-derived state to the row, then replicate it.

        ``version`` is the provider timestamp of the state (event creation
        time, or the sync time for forced writes). A version older than the
        stored one is rejected. A forced write whose fields match the row is
        skipped entirely, so repeated syncs leave both copies untouched.
        """
        current = await self.ensure_record(user_id)

        if (
            not force
            and version is not None
            and current.provider_updated_at is not None
            and version < current.provider_updated_at
        ):
            logger.warning(
                f"Rejected stale subscription update for user {user_id}",
                extra={
                    "user_id": user_id,
                    "incoming_version": version.isoformat(),
                    "stored_version": current.provider_updated_at.isoformat(),
                },
            )
            return ApplyResult(applied=False, reason="stale", record=current)

        if force and current.to_state() == state:
            return ApplyResult(applied=False, reason="unchanged", record=current)

        written = await self.subscription_repo.write_state(
            user_id, state, version, only_if_not_older=not force
        )
        if not written:
            # A newer version landed between our read and the conditional write
            logger.warning(
                f"Subscription update for user {user_id} lost to a newer version",
                extra={"user_id": user_id},
            )
            latest = await self.subscription_repo.get_by_user_id(user_id)
            return ApplyResult(applied=False, reason="stale", record=latest)

        record = await self.subscription_repo.get_by_user_id(user_id)
        replicated = await self.replicate_to_profile(user_id, record)

        logger.info(
            f"Applied subscription state for user {user_id}: "
            f"{state.plan_tier.value}/{state.status.value}",
            extra={
                "user_id": user_id,
                "plan_tier": state.plan_tier.value,
                "status": state.status.value,
                "subscription_id": state.provider_subscription_id,
                "forced": force,
            },
        )
        return ApplyResult(
            applied=True, reason="applied", record=record, replicated=replicated
        )

    @trace_span
    async def downgrade_to_free(
        self, user_id: str, version: Optional[datetime], force: bool = False
    ) -> ApplyResult:
        """Plan free, status canceled, provider subscription cleared."""
        current = await self.ensure_record(user_id)
        if (
            current.plan_tier == PlanTier.FREE
            and current.status == SubscriptionStatus.CANCELED
            and current.provider_subscription_id is None
        ):
            return ApplyResult(applied=False, reason="unchanged", record=current)

        state = free_state(current.provider_customer_id, version or utcnow())
        return await self.apply_provider_state(user_id, state, version, force=force)

    @trace_span
    async def attach_customer(self, user_id: str, customer_id: str) -> SubscriptionRecord:
        """Store the provider customer ID on the user's record."""
        current = await self.ensure_record(user_id)
        if current.provider_customer_id == customer_id:
            return current
        await self.subscription_repo.set_customer_id(user_id, customer_id)
        record = await self.subscription_repo.get_by_user_id(user_id)
        await self.replicate_to_profile(user_id, record)
        return record

    @trace_span
    async def replicate_to_profile(
        self, user_id: str, record: Optional[SubscriptionRecord] = None
    ) -> bool:
        """
        Copy the row into the profile document.

        Returns False when the profile write failed; the row stays
        authoritative and the next read repairs the profile.
        """
        if record is None:
            record = await self.subscription_repo.get_by_user_id(user_id)
        if record is None:
            return False
        try:
            await self.profile_repo.save_subscription(user_id, record.to_document())
            return True
        except Exception as e:
            logger.error(
                f"Partial subscription write for user {user_id}: "
                f"row updated, profile replication failed: {e}",
                extra={"user_id": user_id, "error": str(e), "partial_write": True},
            )
            return False

    @trace_span
    async def detect_and_repair_drift(self, user_id: str) -> bool:
        """
        Compare the profile replica with the row and rewrite it on mismatch.

        Returns True when a repair was made.
        """
        record = await self.subscription_repo.get_by_user_id(user_id)
        if record is None:
            return False

        expected = record.to_document()
        profile = await self.profile_repo.get_by_user_id(user_id)
        actual = profile.subscription if profile else {}

        if _comparable(actual) == _comparable(expected):
            return False

        mismatched = sorted(
            field
            for field in RECORD_FIELDS
            if actual.get(field) != expected.get(field)
        )
        warning = DataIntegrityWarning(
            f"Subscription copies diverged for user {user_id}",
            context={"user_id": user_id, "fields": mismatched},
        )
        logger.warning(
            f"{warning.message}; repairing profile from subscription row",
            extra={"user_id": user_id, "fields": mismatched},
        )
        await self.profile_repo.save_subscription(user_id, expected)
        return True

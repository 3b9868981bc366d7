"""
Unit tests for SubscriptionRecordService.

Covers versioned writes to the subscription row and its profile replica.
"""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError
from unittest.mock import AsyncMock, patch

from packages.entitlements.models.domain.enums import (
    BillingCycle,
    PlanTier,
    SubscriptionStatus,
)
from packages.entitlements.models.domain.subscription import SubscriptionState
from packages.entitlements.repositories.profile_repository import ProfileRepository
from packages.entitlements.services.subscription_record_service import (
    SubscriptionRecordService,
    effective_tier,
)


@pytest.fixture
def record_service():
    return SubscriptionRecordService()


def _hunter_state(**overrides) -> SubscriptionState:
    start = datetime.now(timezone.utc).replace(microsecond=0)
    values = {
        "plan_tier": PlanTier.HUNTER,
        "status": SubscriptionStatus.ACTIVE,
        "billing_cycle": BillingCycle.MONTHLY,
        "provider_customer_id": "cus_test123",
        "provider_subscription_id": "sub_test123",
        "current_period_start": start,
        "current_period_end": start + timedelta(days=30),
    }
    values.update(overrides)
    return SubscriptionState(**values)


@patch("common.core.otel_axiom_exporter.axiom_tracer.start_as_current_span")
class TestSubscriptionRecordService:
    """Tests for SubscriptionRecordService."""

    async def test_ensure_record_creates_free_default(
        self, mock_start_span, record_service
    ):
        record = await record_service.ensure_record("user_new")

        assert record.plan_tier == PlanTier.FREE
        assert record.status == SubscriptionStatus.ACTIVE
        assert record.provider_subscription_id is None
        assert record.provider_updated_at is None

        profile = await ProfileRepository().get_by_user_id("user_new")
        assert profile.subscription["plan_tier"] == "free"

        again = await record_service.ensure_record("user_new")
        assert again.id == record.id

    async def test_apply_newer_version(
        self, mock_start_span, record_service, paid_subscription
    ):
        version = datetime.now(timezone.utc)

        result = await record_service.apply_provider_state(
            paid_subscription.user_id, _hunter_state(), version
        )

        assert result.applied is True
        assert result.reason == "applied"
        assert result.replicated is True
        assert result.record.plan_tier == PlanTier.HUNTER
        assert result.record.provider_updated_at == version

    async def test_older_version_is_stale(
        self, mock_start_span, record_service, paid_subscription
    ):
        version = paid_subscription.provider_updated_at - timedelta(seconds=1)

        result = await record_service.apply_provider_state(
            paid_subscription.user_id, _hunter_state(), version
        )

        assert result.applied is False
        assert result.reason == "stale"
        assert result.record.plan_tier == PlanTier.CASUAL

    async def test_equal_version_is_applied(
        self, mock_start_span, record_service, paid_subscription
    ):
        result = await record_service.apply_provider_state(
            paid_subscription.user_id,
            _hunter_state(),
            paid_subscription.provider_updated_at,
        )

        assert result.applied is True

    async def test_forced_write_ignores_version(
        self, mock_start_span, record_service, paid_subscription
    ):
        version = paid_subscription.provider_updated_at - timedelta(days=1)

        result = await record_service.apply_provider_state(
            paid_subscription.user_id, _hunter_state(), version, force=True
        )

        assert result.applied is True
        assert result.record.plan_tier == PlanTier.HUNTER

    async def test_forced_identical_state_is_unchanged(
        self, mock_start_span, record_service, paid_subscription
    ):
        result = await record_service.apply_provider_state(
            paid_subscription.user_id,
            paid_subscription.to_state(),
            datetime.now(timezone.utc),
            force=True,
        )

        assert result.applied is False
        assert result.reason == "unchanged"
        assert result.record.provider_updated_at == paid_subscription.provider_updated_at

    async def test_replication_failure_keeps_row(
        self, mock_start_span, record_service, paid_subscription
    ):
        with patch.object(
            record_service.profile_repo,
            "save_subscription",
            AsyncMock(side_effect=RuntimeError("profile store down")),
        ):
            result = await record_service.apply_provider_state(
                paid_subscription.user_id, _hunter_state(), datetime.now(timezone.utc)
            )

        assert result.applied is True
        assert result.replicated is False
        assert result.record.plan_tier == PlanTier.HUNTER

        # The next drift check repairs the replica from the row
        assert await record_service.detect_and_repair_drift(paid_subscription.user_id)
        profile = await ProfileRepository().get_by_user_id(paid_subscription.user_id)
        assert profile.subscription["plan_tier"] == "hunter"

    async def test_downgrade_to_free(
        self, mock_start_span, record_service, paid_subscription
    ):
        version = datetime.now(timezone.utc)

        result = await record_service.downgrade_to_free(
            paid_subscription.user_id, version
        )

        assert result.applied is True
        assert result.record.plan_tier == PlanTier.FREE
        assert result.record.status == SubscriptionStatus.CANCELED
        assert result.record.provider_subscription_id is None
        assert result.record.provider_customer_id == "cus_test123"
        assert result.record.canceled_at == version

        repeat = await record_service.downgrade_to_free(
            paid_subscription.user_id, version + timedelta(seconds=1)
        )
        assert repeat.reason == "unchanged"

    async def test_attach_customer(self, mock_start_span, record_service):
        record = await record_service.attach_customer("user_new", "cus_new")

        assert record.provider_customer_id == "cus_new"
        assert record.plan_tier == PlanTier.FREE
        found = await record_service.get_by_customer_id("cus_new")
        assert found.user_id == "user_new"
        profile = await ProfileRepository().get_by_user_id("user_new")
        assert profile.subscription["provider_customer_id"] == "cus_new"

    async def test_no_drift_without_changes(
        self, mock_start_span, record_service, paid_subscription
    ):
        assert (
            await record_service.detect_and_repair_drift(paid_subscription.user_id)
            is False
        )

    async def test_effective_tier(
        self, mock_start_span, record_service, paid_subscription
    ):
        assert (
            await record_service.get_effective_tier(paid_subscription.user_id)
            == PlanTier.CASUAL
        )
        assert effective_tier(None) == PlanTier.FREE
        canceled = paid_subscription.model_copy(
            update={"status": SubscriptionStatus.CANCELED}
        )
        assert effective_tier(canceled) == PlanTier.FREE
        past_due = paid_subscription.model_copy(
            update={"status": SubscriptionStatus.PAST_DUE}
        )
        assert effective_tier(past_due) == PlanTier.CASUAL


class TestSubscriptionState:
    def test_inverted_period_is_rejected(self):
        start = datetime.now(timezone.utc)
        with pytest.raises(PydanticValidationError):
            _hunter_state(
                current_period_start=start, current_period_end=start - timedelta(days=1)
            )

    def test_free_tier_cannot_carry_subscription(self):
        with pytest.raises(PydanticValidationError):
            SubscriptionState.free(provider_subscription_id="sub_test123")

    def test_free_default(self):
        state = SubscriptionState.free("cus_test123")

        assert state.plan_tier == PlanTier.FREE
        assert state.status == SubscriptionStatus.ACTIVE
        assert state.provider_customer_id == "cus_test123"

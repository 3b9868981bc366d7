"""
Unit tests for BillingEventRepository against the test database.
"""

from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import patch

from packages.entitlements.models.domain.enums import EventOutcome
from packages.entitlements.repositories.billing_event_repository import (
    BillingEventRepository,
)


@pytest.fixture
def event_repo():
    return BillingEventRepository()


@patch("common.core.otel_axiom_exporter.axiom_tracer.start_as_current_span")
class TestBillingEventRepository:
    """Tests for the idempotent event log."""

    async def test_record_received_is_idempotent(self, mock_start_span, event_repo):
        first = await event_repo.record_received(
            "evt_1", "invoice.paid", {"id": "in_1"}
        )
        again = await event_repo.record_received(
            "evt_1", "invoice.paid", {"id": "in_other"}
        )

        assert again.id == first.id
        assert again.raw_payload == {"id": "in_1"}
        assert again.processed is False

    async def test_claim_is_exclusive_until_lease_expires(
        self, mock_start_span, event_repo
    ):
        await event_repo.record_received("evt_1", "invoice.paid", {})

        assert await event_repo.claim("evt_1", timedelta(minutes=5)) is True
        assert await event_repo.claim("evt_1", timedelta(minutes=5)) is False
        # An abandoned lease can be taken over
        assert await event_repo.claim("evt_1", timedelta(seconds=-1)) is True

    async def test_processed_event_cannot_be_claimed(
        self, mock_start_span, event_repo
    ):
        await event_repo.record_received("evt_1", "invoice.paid", {})
        await event_repo.mark_processed("evt_1", EventOutcome.APPLIED, user_id="user_1")

        event = await event_repo.get_by_event_id("evt_1")

        assert event.processed is True
        assert event.outcome == EventOutcome.APPLIED
        assert event.user_id == "user_1"
        assert event.processed_at is not None
        assert await event_repo.claim("evt_1", timedelta(seconds=-1)) is False

    async def test_operational_reads(self, mock_start_span, event_repo):
        for event_id in ("evt_open", "evt_failed", "evt_orphan", "evt_ok"):
            await event_repo.record_received(event_id, "invoice.paid", {})
        await event_repo.mark_processed(
            "evt_failed", EventOutcome.FAILED, error_message="boom"
        )
        await event_repo.mark_processed("evt_orphan", EventOutcome.ORPHANED)
        await event_repo.mark_processed("evt_ok", EventOutcome.APPLIED)

        later = datetime.now(timezone.utc) + timedelta(minutes=1)
        unprocessed = await event_repo.list_unprocessed(older_than=later)
        failed = await event_repo.list_failed()

        assert [event.event_id for event in unprocessed] == ["evt_open"]
        assert {event.event_id for event in failed} == {"evt_failed", "evt_orphan"}
        assert await event_repo.list_unprocessed(
            older_than=datetime.now(timezone.utc) - timedelta(hours=1)
        ) == []

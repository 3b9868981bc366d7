"""Entitlement services."""

from packages.entitlements.services.billing_service import BillingService
from packages.entitlements.services.plan_catalog_service import PlanCatalogService
from packages.entitlements.services.reconciliation_service import (
    ReconciliationService,
)
from packages.entitlements.services.slot_limiter_service import SlotLimiterService
from packages.entitlements.services.subscription_record_service import (
    SubscriptionRecordService,
)
from packages.entitlements.services.usage_ledger_service import UsageLedgerService
from packages.entitlements.services.weekly_discovery_service import (
    WeeklyDiscoveryService,
)

__all__ = [
    "BillingService",
    "PlanCatalogService",
    "ReconciliationService",
    "SlotLimiterService",
    "SubscriptionRecordService",
    "UsageLedgerService",
    "WeeklyDiscoveryService",
]

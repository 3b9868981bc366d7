"""Entitlement providers - abstracted external platform integrations."""

from packages.entitlements.providers.payment.factory import get_billing_gateway

__all__ = [
    "get_billing_gateway",
]

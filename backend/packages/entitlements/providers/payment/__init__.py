"""Payment providers - subscription billing and invoicing."""

from packages.entitlements.providers.payment.interface import BillingGatewayInterface
from packages.entitlements.providers.payment.factory import get_billing_gateway

__all__ = [
    "BillingGatewayInterface",
    "get_billing_gateway",
]

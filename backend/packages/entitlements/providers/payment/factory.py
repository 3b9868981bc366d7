"""
Factory for getting the billing gateway instance.
"""

from packages.entitlements.providers.payment.interface import BillingGatewayInterface
from packages.entitlements.providers.payment.stripe_gateway import StripeBillingGateway


def get_billing_gateway() -> BillingGatewayInterface:
    """
    Get the billing gateway based on configuration.

    Only Stripe is supported; callers depend on the interface so tests can
    substitute a mock.
    """
    return StripeBillingGateway()

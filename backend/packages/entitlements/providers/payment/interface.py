"""
Interface for the billing gateway.

Abstracts subscription billing away from a specific platform. Implementations
translate every provider error into the entitlement error taxonomy before it
crosses this boundary.
"""

from abc import ABC, abstractmethod
from typing import Optional

from packages.entitlements.models.domain.provider import (
    CustomerRef,
    ProviderCustomer,
    ProviderEvent,
    ProviderInvoice,
    ProviderSubscription,
    SessionRef,
)


class BillingGatewayInterface(ABC):
    """Abstract capability interface over the billing provider."""

    @abstractmethod
    async def create_or_get_customer(
        self,
        user_id: str,
        email: Optional[str] = None,
        name: Optional[str] = None,
        existing_customer_id: Optional[str] = None,
    ) -> CustomerRef:
        """
        Return the user's provider customer, creating one when none is known.

        Args:
            user_id: Internal user ID, stored in customer metadata
            email: Customer email for receipts
            name: Display name
            existing_customer_id: Known customer ID to reuse

        Returns:
            CustomerRef with ``created`` set when a new customer was made
        """
        pass

    @abstractmethod
    async def create_checkout_session(
        self,
        user_id: str,
        price_id: str,
        success_url: str,
        cancel_url: str,
        plan_name: str,
        customer_id: Optional[str] = None,
        billing_cycle: str = "monthly",
        trial_days: Optional[int] = None,
    ) -> SessionRef:
        """
        Create a hosted checkout session in subscription mode.

        Session and subscription metadata carry ``user_id`` and ``plan_name``
        so webhooks can be attributed without a local lookup.
        """
        pass

    @abstractmethod
    async def create_portal_session(self, customer_id: str, return_url: str) -> SessionRef:
        """Create a customer portal session for managing the subscription."""
        pass

    @abstractmethod
    async def get_subscription(self, subscription_id: str) -> ProviderSubscription:
        """Fetch the live subscription (authoritative status and period dates)."""
        pass

    @abstractmethod
    async def get_customer(self, customer_id: str) -> ProviderCustomer:
        """Fetch a customer, used to resolve users from customer metadata."""
        pass

    @abstractmethod
    async def cancel_subscription(
        self, subscription_id: str, at_period_end: bool = True
    ) -> ProviderSubscription:
        """Cancel now or at the end of the current period."""
        pass

    @abstractmethod
    async def resume_subscription(self, subscription_id: str) -> ProviderSubscription:
        """Undo a pending cancel-at-period-end."""
        pass

    @abstractmethod
    async def change_plan(
        self,
        subscription_id: str,
        new_price_id: str,
        metadata: Optional[dict[str, str]] = None,
    ) -> ProviderSubscription:
        """Swap the subscription's price, prorating the difference."""
        pass

    @abstractmethod
    async def list_invoices(
        self, customer_id: str, limit: int = 10
    ) -> list[ProviderInvoice]:
        """List the customer's most recent invoices."""
        pass

    @abstractmethod
    async def get_price_amount(self, price_id: str) -> Optional[int]:
        """Unit amount of a price in cents, or None if it has none."""
        pass

    @abstractmethod
    def verify_signature(
        self, payload: bytes, signature: str, secret: str
    ) -> ProviderEvent:
        """
        Verify a webhook signature and parse the event.

        Raises:
            InvalidSignature: signature or timestamp did not verify
            MalformedEvent: body is not an event with an id and a type
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """
        Check if the billing provider is reachable with our credentials.

        Returns:
            True if healthy, False otherwise
        """
        pass

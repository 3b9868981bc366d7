"""
Entitlement error taxonomy.

Provider (Stripe) errors are translated into these at the gateway boundary;
nothing above the gateway sees a provider exception type. HTTP status codes
are assigned only at the route layer (see routes/errors.py).
"""

from typing import Any, Optional

from common.core.exceptions import AppException


class EntitlementError(AppException):
    """Base class for subscription, usage and quota errors."""

    pass


class InvalidSignature(EntitlementError):
    """Webhook signature did not verify; rejected before any processing."""

    pass


class MalformedEvent(EntitlementError):
    """Webhook body verified but is not a usable event (no id/type, bad JSON)."""

    pass


class OrphanedEvent(EntitlementError):
    """No internal user could be resolved for a billing event."""

    def __init__(self, event_id: str, customer_id: Optional[str] = None, reason: str = ""):
        message = f"Could not resolve user for event {event_id}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(
            message, context={"event_id": event_id, "customer_id": customer_id}
        )
        self.event_id = event_id
        self.customer_id = customer_id


class HandlerFailure(EntitlementError):
    """A recognized event's side effects failed partially or fully."""

    def __init__(self, event_id: str, event_type: str, cause: Exception):
        super().__init__(
            f"Handler for {event_type} failed: {cause}",
            context={"event_id": event_id, "event_type": event_type},
        )
        self.event_id = event_id
        self.event_type = event_type
        self.cause = cause


class QuotaExceeded(EntitlementError):
    """A metered action was rejected; carries what the caller needs for an upgrade prompt."""

    def __init__(
        self,
        feature: str,
        current: int,
        limit: int,
        remaining: int,
        recommended_plan: Optional[str] = None,
        message: Optional[str] = None,
    ):
        super().__init__(
            message or f"{feature} limit reached ({current}/{limit})",
            context={
                "feature": feature,
                "current": current,
                "limit": limit,
                "remaining": remaining,
                "recommended_plan": recommended_plan,
            },
        )
        self.feature = feature
        self.current = current
        self.limit = limit
        self.remaining = remaining
        self.recommended_plan = recommended_plan


class ProviderUnavailable(EntitlementError):
    """Billing provider unreachable, timed out, rate limited or erroring (5xx)."""

    def __init__(self, operation: str, cause: Optional[Any] = None):
        super().__init__(
            f"Billing provider unavailable during {operation}: {cause}",
            context={"operation": operation},
        )
        self.operation = operation


class ProviderRequestError(EntitlementError):
    """Billing provider rejected the request (bad ID, invalid parameters)."""

    def __init__(self, operation: str, message: str, code: Optional[str] = None):
        super().__init__(
            f"Billing provider rejected {operation}: {message}",
            context={"operation": operation, "code": code},
        )
        self.operation = operation
        self.code = code


class DataIntegrityWarning(EntitlementError):
    """Two copies of the same fact disagreed. Logged and auto-corrected, never raised to users."""

    pass

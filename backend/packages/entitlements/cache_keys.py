"""Cache key generators for the entitlements package."""


def provider_subscription_key(subscription_id: str) -> str:
    """Generate cache key for a provider subscription fetch."""
    return f"provider_subscription:{subscription_id}"


def plan_prices_key() -> str:
    return "plans:stripe_prices"

"""
Entitlements package - subscriptions, usage quotas and AI discovery limits.

This package integrates with:
- Stripe: Checkout, subscriptions and invoicing (via the billing gateway)

Subscription state is reconciled from Stripe webhooks and on-demand syncs;
quotas are enforced locally against the monthly usage ledger.
"""

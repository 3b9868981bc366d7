"""Entitlement API routes."""

from packages.entitlements.routes import discovery, plans, subscription, usage, webhooks

__all__ = ["discovery", "plans", "subscription", "usage", "webhooks"]

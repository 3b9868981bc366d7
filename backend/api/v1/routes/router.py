from fastapi import APIRouter, Depends

from api.v1.routes import (
    health,
)
from packages.entitlements.dependencies import get_current_user_id
from packages.entitlements.routes import discovery, plans, subscription, usage, webhooks

api_router = APIRouter()

# Health check (no auth required)
api_router.include_router(health.router, prefix="/health", tags=["health"])

# Webhooks (no auth - signature verified internally)
api_router.include_router(webhooks.router, tags=["webhooks"])

# Plans (no auth - public pricing info)
api_router.include_router(plans.router, prefix="/billing/plans", tags=["billing"])

# Billing routes (caller identity required)
api_router.include_router(
    subscription.router,
    prefix="/billing",
    tags=["billing"],
    dependencies=[Depends(get_current_user_id)],
)
api_router.include_router(
    usage.router,
    prefix="/billing",
    tags=["usage"],
    dependencies=[Depends(get_current_user_id)],
)
api_router.include_router(
    discovery.router,
    prefix="/billing",
    tags=["discovery"],
    dependencies=[Depends(get_current_user_id)],
)

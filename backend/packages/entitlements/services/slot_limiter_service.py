"""
Service enforcing the number of concurrently active AI searches per plan.
"""

from common.core.otel_axiom_exporter import get_logger, trace_span
from packages.entitlements.exceptions import DataIntegrityWarning
from packages.entitlements.models.domain.discovery import SlotCheck
from packages.entitlements.models.domain.plans import get_plan_limits
from packages.entitlements.repositories.ai_search_repository import AISearchRepository
from packages.entitlements.repositories.profile_repository import ProfileRepository
from packages.entitlements.services.subscription_record_service import (
    SubscriptionRecordService,
)

logger = get_logger(__name__)


class SlotLimiterService:
    """
    Slot checks against a live count of running and paused AI searches.

    The profile's ``active_ai_searches`` counter is display-only; it is
    resynchronised from the live count whenever the two differ.
    """

    def __init__(self):
        self.ai_search_repo = AISearchRepository()
        self.profile_repo = ProfileRepository()
        self.subscription_records = SubscriptionRecordService()

    @trace_span
    async def check_slot_availability(self, user_id: str) -> SlotCheck:
        tier = await self.subscription_records.get_effective_tier(user_id)
        limit = get_plan_limits(tier).ai_search_slots
        current = await self.ai_search_repo.count_active(user_id)

        await self._resync_cached_count(user_id, current)

        return SlotCheck(
            allowed=current < limit,
            current=current,
            limit=limit,
            remaining=max(0, limit - current),
        )

    @trace_span
    async def release_slot(self, user_id: str, search_id: int) -> SlotCheck:
        """
        Called when a search stops or is deleted.

        Nothing is decremented: availability is always recounted.
        """
        logger.info(
            f"Released AI search slot for search {search_id}",
            extra={"user_id": user_id, "search_id": search_id},
        )
        return await self.check_slot_availability(user_id)

    async def _resync_cached_count(self, user_id: str, live_count: int) -> None:
        try:
            profile = await self.profile_repo.get_by_user_id(user_id)
            cached = profile.cached_active_searches if profile else None
            if cached == live_count:
                return
            if cached is not None:
                warning = DataIntegrityWarning(
                    f"Cached active search count diverged for user {user_id}",
                    context={"cached": cached, "live": live_count},
                )
                logger.warning(
                    f"{warning.message} ({cached} cached, {live_count} live); resyncing",
                    extra={"user_id": user_id, "cached": cached, "live": live_count},
                )
            await self.profile_repo.merge_usage(
                user_id, {"active_ai_searches": live_count}
            )
        except Exception as e:
            logger.warning(
                f"Failed to resync active search cache for user {user_id}: {e}",
                extra={"user_id": user_id, "error": str(e)},
            )

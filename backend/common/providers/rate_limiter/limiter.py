"""Global rate limiter instance for SlowAPI."""

from slowapi import Limiter
from slowapi.util import get_remote_address
from common.core.config import settings

# Redis-backed so limits hold across API pods; RATE_LIMIT_STORAGE_URI=memory://
# for single-process runs
# - 10/second: absorbs dashboard bursts (subscription + usage + discovery reads)
# - 300/minute: sustained rate limit (5 req/sec average)
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["10/second", "300/minute"],
    storage_uri=settings.rate_limit_storage_uri or settings.redis_connection_url,
)

from enum import Enum


class Environment(str, Enum):
    """Environment profiles."""

    LOCAL = "local"
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class CacheBackend(str, Enum):
    """Cache provider types."""

    REDIS = "redis"
    MEMORY = "memory"
    NONE = "none"


class WeeklyWindowPolicy(str, Enum):
    """How the weekly AI discovery window is anchored."""

    CALENDAR_MONDAY = "calendar_monday"  # Monday 00:00 UTC
    ROLLING_FROM_FIRST_USE = "rolling_from_first_use"  # 7-day tiles from first use


class WeeklyOvershootPolicy(str, Enum):
    """What happens when a discovery burst crosses the weekly limit."""

    ALLOW_BURST = "allow_burst"  # whole burst lands if the window was below limit
    HARD_STOP = "hard_stop"  # burst is clamped at the limit

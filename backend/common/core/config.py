from typing import Optional, List
from pydantic_settings import BaseSettings, SettingsConfigDict

from common.core.constants import (
    CacheBackend,
    Environment,
    WeeklyOvershootPolicy,
    WeeklyWindowPolicy,
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # Environment Profile
    environment: Environment = Environment.LOCAL

    # API Settings
    app_name: str = "jobhunt-entitlements"
    api_version: str = "v1"
    debug: bool = False

    # Database Components
    db_user: str = "postgres"
    db_password: str = "postgres"
    db_host: str = "localhost"
    db_port: int = 5432
    db_name: str = "jobhunt"
    db_use_nullpool: bool = (
        False  # True for workers (sequential), False for API (concurrent)
    )
    db_pool_size: int = 10
    db_pool_overflow: int = 5

    @property
    def database_url(self) -> str:
        """Construct database URL from components."""
        return f"postgresql://{self.db_user}:{self.db_password}@{self.db_host}:{self.db_port}/{self.db_name}"

    # Redis
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: Optional[str] = None
    redis_db: int = 0

    @property
    def redis_connection_url(self) -> str:
        """Construct Redis URL from components."""
        if self.redis_password:
            return f"redis://:{self.redis_password}@{self.redis_host}:{self.redis_port}/{self.redis_db}"
        else:
            return f"redis://{self.redis_host}:{self.redis_port}/{self.redis_db}"

    # Caching / rate limiting
    cache_backend: CacheBackend = CacheBackend.REDIS
    rate_limit_storage_uri: Optional[str] = None  # "memory://" for local runs

    # OpenTelemetry
    otel_service_name: str = "jobhunt-entitlements"
    otel_service_version: str = "0.1.0"
    otel_export_enabled: bool = False

    # Axiom
    axiom_token: str = ""
    axiom_dataset: str = ""

    # Billing - Stripe (payments)
    stripe_secret_key: str = ""
    stripe_publishable_key: str = ""
    stripe_webhook_secret: str = ""
    # Stripe price IDs per plan and billing cycle
    stripe_price_id_casual_monthly: str = ""
    stripe_price_id_casual_yearly: str = ""
    stripe_price_id_hunter_monthly: str = ""
    stripe_price_id_hunter_yearly: str = ""
    # Every Stripe call gets one bounded attempt
    stripe_request_timeout_seconds: float = 10.0
    stripe_max_network_retries: int = 0
    checkout_trial_days: int = 7

    # Usage & discovery policies
    weekly_window_policy: WeeklyWindowPolicy = WeeklyWindowPolicy.CALENDAR_MONDAY
    weekly_overshoot_policy: WeeklyOvershootPolicy = WeeklyOvershootPolicy.HARD_STOP
    usage_history_retention: int = 12
    rollover_interval_seconds: int = 3600
    rollover_lock_timeout_seconds: int = 900

    # Frontend redirects for checkout and portal sessions
    frontend_url: str = "http://localhost:3000"

    @property
    def cors_allowed_origins(self) -> List[str]:
        """Auto-select CORS origins based on environment."""
        if self.environment == Environment.LOCAL:
            return [
                "http://localhost:3000",
                "http://localhost:3001",
            ]
        return [self.frontend_url]


settings = Settings()

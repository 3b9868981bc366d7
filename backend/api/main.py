import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware

# Telemetry is initialized before the routers are imported
from opentelemetry.instrumentation.asgi import OpenTelemetryMiddleware
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from common.core.otel_axiom_exporter import _initialize_telemetry, get_logger

from api.v1.routes.router import api_router
from common.core.config import settings
from common.db.session import close_db, init_db
from common.providers.caching.factory import get_cache_provider, set_cache_provider
from common.providers.rate_limiter.limiter import limiter
from internal.routes.router import internal_router
from packages.entitlements.routes.errors import register_exception_handlers

_initialize_telemetry()
logging.basicConfig(
    level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = get_logger(__name__)


async def _close_cache() -> None:
    provider = get_cache_provider()
    disconnect = getattr(provider, "disconnect", None)
    if disconnect is not None:
        await disconnect()
    set_cache_provider(None)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"Starting {settings.app_name} ({settings.environment.value})")
    if await init_db():
        logger.info("Database reachable")
    if not settings.stripe_webhook_secret:
        logger.warning("STRIPE_WEBHOOK_SECRET is not set; webhooks will be rejected")
    yield
    logger.info("Shutting down entitlements service...")
    await _close_cache()
    await close_db()


# OpenAPI docs only in local development
docs_enabled = settings.environment == "local"

app = FastAPI(
    title=settings.app_name,
    version=settings.api_version,
    lifespan=lifespan,
    docs_url="/docs" if docs_enabled else None,
    redoc_url="/redoc" if docs_enabled else None,
    openapi_url="/openapi.json" if docs_enabled else None,
)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)

# Entitlement errors -> HTTP status codes
register_exception_handlers(app)

FastAPIInstrumentor.instrument_app(app)
app.add_middleware(OpenTelemetryMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Caller identity is enforced per router (X-User-Id)
app.include_router(api_router, prefix="/api/v1")

# K8s probes at root level - not routed by ingress
app.include_router(internal_router)

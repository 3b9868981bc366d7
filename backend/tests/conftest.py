# Shared pytest configuration and fixtures for all test types
from datetime import datetime, timedelta, timezone
from unittest.mock import patch

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

# Create test limiter with no limits and in-memory storage
test_limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri="memory://",
)

# Patch the limiter before importing the app so decorators use test limiter
with patch("common.providers.rate_limiter.limiter.limiter", test_limiter):
    from api.main import app

from common.db.base import Base
from common.db.session import get_db_readonly
from common.providers.caching.factory import set_cache_provider
from common.providers.caching.memory_cache import MemoryCache
from packages.entitlements.dependencies import get_current_user_id
from packages.entitlements.models.database import (  # noqa: F401 - registers tables
    UserProfileEntity,
    UserSubscriptionEntity,
)
from packages.entitlements.models.domain.enums import (
    BillingCycle,
    PlanTier,
    SubscriptionStatus,
)
from packages.entitlements.models.domain.subscription import SubscriptionRecord

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine and initialize schema."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_connection(test_engine):
    """Create test connection with outer transaction for rollback isolation."""
    async with test_engine.connect() as connection:
        trans = await connection.begin()
        yield connection
        await trans.rollback()


@pytest_asyncio.fixture(scope="function")
async def test_session_factory(test_connection):
    """Create session factory bound to test connection.

    Using join_transaction_mode="create_savepoint" so every commit made by
    the code under test releases a savepoint inside the outer transaction.
    """
    return async_sessionmaker(
        bind=test_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )


@pytest_asyncio.fixture(scope="function")
async def test_db(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function", autouse=True)
async def patch_lazy_sessions(test_session_factory, monkeypatch):
    """
    Patch session factories to use test database.

    This allows real transaction() and get_session() to run with proper
    commit/rollback/ContextVar semantics while using the test database.
    """
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocal", test_session_factory)
    monkeypatch.setattr(
        "common.db.scoped.AsyncSessionLocalReadonly", test_session_factory
    )


@pytest_asyncio.fixture(scope="function", autouse=True)
async def memory_cache():
    """Fresh in-process cache per test instead of Redis."""
    cache = MemoryCache()
    set_cache_provider(cache)
    yield cache
    set_cache_provider(None)


@pytest_asyncio.fixture(scope="function")
async def test_user_id():
    return "user_test_123"


@pytest_asyncio.fixture(scope="function")
async def client(test_db: AsyncSession, test_user_id):
    """Create a test client."""

    def override_get_db():
        try:
            yield test_db
        finally:
            pass

    def override_get_current_user_id():
        return test_user_id

    app.dependency_overrides[get_db_readonly] = override_get_db
    app.dependency_overrides[get_current_user_id] = override_get_current_user_id

    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def paid_subscription(test_db: AsyncSession, test_user_id):
    """A casual/active monthly subscription with a matching profile replica."""
    period_start = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(days=3)
    entity = UserSubscriptionEntity(
        user_id=test_user_id,
        plan_tier=PlanTier.CASUAL.value,
        status=SubscriptionStatus.ACTIVE.value,
        billing_cycle=BillingCycle.MONTHLY.value,
        provider_customer_id="cus_test123",
        provider_subscription_id="sub_test123",
        current_period_start=period_start,
        current_period_end=period_start + timedelta(days=30),
        cancel_at_period_end=False,
        provider_updated_at=period_start,
    )
    test_db.add(entity)
    await test_db.commit()
    await test_db.refresh(entity)

    record = SubscriptionRecord.model_validate(entity)
    test_db.add(
        UserProfileEntity(
            user_id=test_user_id,
            subscription=record.to_document(),
            usage={},
            usage_history=[],
        )
    )
    await test_db.commit()
    return record

from uuid import uuid4

from sqlalchemy import pool, text
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger

logger = get_logger(__name__)

ASYNC_DATABASE_URL = settings.database_url.replace(
    "postgresql://", "postgresql+asyncpg://"
)


def _engine_kwargs() -> dict:
    kwargs = {"echo": settings.debug, "pool_pre_ping": True, "pool_recycle": 3600}
    if ASYNC_DATABASE_URL.startswith("postgresql+asyncpg"):
        # Unique statement names; pgbouncer in transaction mode reuses connections
        kwargs["connect_args"] = {
            "prepared_statement_name_func": lambda: f"__asyncpg_{uuid4()}__",
        }

    # The rollover worker runs with NullPool; API servers pool connections
    if settings.db_use_nullpool:
        logger.info("Using NullPool for database connections")
        kwargs["poolclass"] = pool.NullPool
    else:
        logger.info(
            f"Using connection pool (size={settings.db_pool_size}, "
            f"overflow={settings.db_pool_overflow})"
        )
        kwargs["pool_size"] = settings.db_pool_size
        kwargs["max_overflow"] = settings.db_pool_overflow
    return kwargs


engine = create_async_engine(ASYNC_DATABASE_URL, **_engine_kwargs())
AsyncSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)

# Same engine today; point this at a replica when one exists
AsyncSessionLocalReadonly = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


async def get_db_readonly():
    """Readonly session for health checks and read-only endpoints."""
    async with AsyncSessionLocalReadonly() as session:
        try:
            yield session
        except Exception as e:
            logger.error(f"Error in readonly session: {e}")
            await session.rollback()
            raise


async def init_db() -> bool:
    """
    Check the database is reachable at startup.

    The schema itself is owned by Alembic migrations. Returns False (and
    logs) instead of raising so the probes can report the failure.
    """
    try:
        async with engine.connect() as connection:
            await connection.execute(text("SELECT 1"))
        return True
    except Exception as e:
        logger.error(f"Database unreachable at startup: {e}")
        return False


async def close_db() -> None:
    await engine.dispose()

"""
Operation-scoped database sessions.

``get_session()`` joins the enclosing ``transaction()`` when there is one and
otherwise opens a short-lived session that commits and releases as soon as the
block exits. Connections are never held across Stripe calls this way.

    async with transaction():
        await usage_repo.increment_if_below_limit(...)
        await profile_repo.merge_usage(...)
    # commits together, then releases
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession

from common.core.otel_axiom_exporter import get_logger
from common.db.session import AsyncSessionLocal, AsyncSessionLocalReadonly
from common.db.context import (
    get_current_session,
    set_current_session,
    reset_current_session,
    is_readonly_forced,
)

logger = get_logger(__name__)


def _factory(readonly: bool):
    return AsyncSessionLocalReadonly if readonly else AsyncSessionLocal


@asynccontextmanager
async def transaction(readonly: bool = False) -> AsyncGenerator[AsyncSession, None]:
    """Explicit transaction boundary; commits on success, rolls back on error.

    A nested ``transaction()`` joins the enclosing one; only the outermost
    block commits.
    """
    effective_readonly = readonly or is_readonly_forced()
    existing = get_current_session(readonly=effective_readonly)

    if existing:
        yield existing
        return

    start = time.perf_counter()
    async with _factory(effective_readonly)() as session:
        logger.debug(
            f"Transaction session acquire: {(time.perf_counter() - start) * 1000:.2f}ms, "
            f"readonly={effective_readonly}"
        )
        token = set_current_session(session, readonly=effective_readonly)
        try:
            yield session
            if not effective_readonly:
                await session.commit()
        except Exception as e:
            logger.error(f"Transaction rollback due to: {e}")
            await session.rollback()
            raise
        finally:
            reset_current_session(token, readonly=effective_readonly)


@asynccontextmanager
async def get_session(readonly: bool = False) -> AsyncGenerator[AsyncSession, None]:
    """Session for a single repository operation."""
    effective_readonly = readonly or is_readonly_forced()
    existing = get_current_session(readonly=effective_readonly)

    if existing:
        # The enclosing transaction owns commit/rollback
        yield existing
        return

    async with _factory(effective_readonly)() as session:
        try:
            yield session
            if not effective_readonly:
                commit_start = time.perf_counter()
                await session.commit()
                logger.debug(
                    f"Operation commit: {(time.perf_counter() - commit_start) * 1000:.2f}ms"
                )
        except Exception as e:
            logger.error(f"Operation rollback due to: {e}")
            await session.rollback()
            raise

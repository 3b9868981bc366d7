"""Dialect-aware statements shared by repositories."""

from typing import Any, Iterable

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession


def _dialect_insert(session: AsyncSession, table):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(table)
    if dialect == "sqlite":
        return sqlite.insert(table)
    raise NotImplementedError(f"insert_if_absent is not supported on {dialect}")


async def insert_if_absent(
    session: AsyncSession,
    table,
    values: dict[str, Any],
    conflict_columns: Iterable[str],
) -> bool:
    """INSERT ... ON CONFLICT DO NOTHING.

    Returns True when this call inserted the row, False when a row with the
    same ``conflict_columns`` already existed.
    """
    stmt = (
        _dialect_insert(session, table)
        .values(**values)
        .on_conflict_do_nothing(index_elements=list(conflict_columns))
    )
    result = await session.execute(stmt)
    return (result.rowcount or 0) > 0

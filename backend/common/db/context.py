"""
Session context for the current call chain.

A write session opened by ``transaction()`` is published here so every
repository call underneath it joins the same unit of work without threading a
session through every signature.

    @transactional
    async def _archive_entry(...):
        await usage_repo.mark_archived(...)
        await profile_repo.append_usage_history(...)

``@readonly`` routes the whole chain to the readonly session factory.
"""

from contextvars import ContextVar, Token
from functools import wraps
from typing import Optional, Callable, TypeVar, ParamSpec

from sqlalchemy.ext.asyncio import AsyncSession

_write_session: ContextVar[Optional[AsyncSession]] = ContextVar(
    "db_write_session", default=None
)
_read_session: ContextVar[Optional[AsyncSession]] = ContextVar(
    "db_read_session", default=None
)
_force_readonly: ContextVar[bool] = ContextVar("db_force_readonly", default=False)


def is_readonly_forced() -> bool:
    return _force_readonly.get()


def get_current_session(readonly: bool = False) -> Optional[AsyncSession]:
    """Session of the enclosing transaction, or None outside one."""
    if readonly or is_readonly_forced():
        return _read_session.get()
    return _write_session.get()


def set_current_session(session: AsyncSession, readonly: bool = False) -> Token:
    if readonly:
        return _read_session.set(session)
    return _write_session.set(session)


def reset_current_session(token: Token, readonly: bool = False) -> None:
    if readonly:
        _read_session.reset(token)
    else:
        _write_session.reset(token)


def in_transaction(readonly: bool = False) -> bool:
    return get_current_session(readonly=readonly) is not None


P = ParamSpec("P")
T = TypeVar("T")


def readonly(func: Callable[P, T]) -> Callable[P, T]:
    """Force every DB operation in this call chain onto the readonly factory."""

    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        token = _force_readonly.set(True)
        try:
            return await func(*args, **kwargs)
        finally:
            _force_readonly.reset(token)

    return wrapper


def transactional(func: Callable[P, T]) -> Callable[P, T]:
    """Run the wrapped coroutine inside one ``transaction()``.

    Nested use joins the outer transaction instead of opening a second one.
    """

    @wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
        from common.db.scoped import transaction as tx  # noqa: PLC0415

        if in_transaction():
            return await func(*args, **kwargs)
        async with tx():
            return await func(*args, **kwargs)

    return wrapper

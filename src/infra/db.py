"""Async database session factory with RLS organization binding.

Provides:
- create_db_engine(): AsyncEngine factory (asyncpg)
- create_session_factory(): async_sessionmaker bound to engine
- bind_organization(): calls set_session_organization(org_id), the remote
  procedure the RLS policies depend on
- get_db_session(): async generator that binds the organization before
  yielding the session
- translate_db_error(): maps driver exceptions onto BackendError kinds

All organization-scoped tables rely on the session variable assigned by
set_session_organization(). This module is the ONLY place that calls it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from src.infra.org.errors import kind_for_code
from src.shared.errors import BackendError, ErrorKind

if TYPE_CHECKING:
    import uuid
    from collections.abc import AsyncGenerator

BIND_ORGANIZATION_SQL = sa.text("SELECT set_session_organization(CAST(:org_id AS uuid))")


def create_db_engine(
    url: str,
    *,
    pool_size: int = 10,
    max_overflow: int = 20,
    echo: bool = False,
) -> AsyncEngine:
    """Create an async SQLAlchemy engine for asyncpg.

    Args:
        url: Database URL (must use postgresql+asyncpg:// scheme).
        pool_size: Connection pool size.
        max_overflow: Max overflow connections beyond pool_size.
        echo: Whether to log SQL statements.
    """
    return create_async_engine(
        url,
        pool_size=pool_size,
        max_overflow=max_overflow,
        echo=echo,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create an async session factory bound to the given engine.

    expire_on_commit=False keeps attributes readable after commit.
    """
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def bind_organization(session: AsyncSession, organization_id: uuid.UUID) -> None:
    """Run set_session_organization(org_id) on the session's transaction."""
    await session.execute(BIND_ORGANIZATION_SQL, {"org_id": str(organization_id)})


async def get_db_session(
    *,
    session_factory: async_sessionmaker[AsyncSession],
    organization_id: uuid.UUID | None,
) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session with the organization bound for RLS.

    Pooled connections do not keep session variables between checkouts,
    so the binding is applied on every session, not once per login.

    Raises:
        ValueError: If organization_id is None (RLS bypass prevention).
        BackendError: If the binding procedure fails.
    """
    if organization_id is None:
        msg = "organization_id is required for RLS-scoped database sessions"
        raise ValueError(msg)

    session = session_factory()
    try:
        try:
            await bind_organization(session, organization_id)
        except sa_exc.DBAPIError as exc:
            raise translate_db_error(exc) from exc
        yield session
    finally:
        await session.close()


def _sqlstate(exc: sa_exc.DBAPIError) -> str:
    orig = exc.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    return str(code) if code else ""


def translate_db_error(exc: sa_exc.SQLAlchemyError) -> BackendError:
    """Map a SQLAlchemy/driver exception onto a BackendError with an ErrorKind.

    SQLSTATE wins when the driver exposes one; otherwise the exception
    class decides (integrity -> conflict, connection loss -> unavailable).
    """
    code = _sqlstate(exc) if isinstance(exc, sa_exc.DBAPIError) else ""
    kind = kind_for_code(code) if code else ErrorKind.UNKNOWN

    if kind is ErrorKind.UNKNOWN:
        if isinstance(exc, sa_exc.IntegrityError):
            kind = ErrorKind.CONFLICT
        elif isinstance(exc, (sa_exc.OperationalError, sa_exc.InterfaceError)) or (
            isinstance(exc, sa_exc.DBAPIError) and exc.connection_invalidated
        ):
            kind = ErrorKind.UNAVAILABLE

    message = str(exc.orig) if isinstance(exc, sa_exc.DBAPIError) else str(exc)
    return BackendError(message, kind=kind, backend_code=code)

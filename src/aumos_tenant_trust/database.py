"""Async database engine and session dependency for aumos-tenant-trust.

``init_database`` is called from the application lifespan whenever a
database backend is configured. Request dependencies open one session per
request through ``session_scope``, which commits on success and rolls back
on any error.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from aumos_tenant_trust.core.models import Base
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_database(database_url: str) -> AsyncEngine:
    """Create the process engine and session factory.

    Args:
        database_url: SQLAlchemy async URL.

    Returns:
        The created engine.
    """
    global _engine, _session_factory
    _engine = create_async_engine(database_url, pool_pre_ping=True)
    _session_factory = async_sessionmaker(_engine, expire_on_commit=False)
    logger.info("Database engine initialized", url=_engine.url.render_as_string(hide_password=True))
    return _engine


async def create_tables() -> None:
    """Create tt_ tables that do not exist yet (development and tests only)."""
    if _engine is None:
        raise RuntimeError("Database not initialized")
    async with _engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)


async def dispose_database() -> None:
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None


@asynccontextmanager
async def session_scope() -> AsyncIterator[AsyncSession]:
    """One transactional session: commit on success, roll back on error."""
    if _session_factory is None:
        raise RuntimeError("Database not initialized")
    async with _session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

"""Async database engine and session factory construction.

Provides:
    - build_engine: an AsyncEngine for the configured URL (SQLite or PostgreSQL).
    - build_session_factory: an async_sessionmaker bound to the engine.
    - create_tables: create_all for development and tests.

Nothing here is a module-level singleton; the SqlLedgerStore owns its engine.

Usage:
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_tables(engine)
    factory = build_session_factory(engine)
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from midnight_markets.logging_config import get_logger

logger = get_logger(__name__)


def build_engine(
    database_url: str,
    echo: bool = False,
    pool_size: int = 10,
    max_overflow: int = 20,
) -> AsyncEngine:
    """Create the async engine.

    In-memory SQLite shares one connection (StaticPool) so every session sees
    the same database; server databases get a pre-pinged connection pool.
    """
    if database_url.startswith("sqlite"):
        kwargs: dict = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url:
            kwargs["poolclass"] = StaticPool
    else:
        kwargs = {
            "pool_size": pool_size,
            "max_overflow": max_overflow,
            "pool_pre_ping": True,
        }
    engine = create_async_engine(database_url, echo=echo, **kwargs)
    logger.info("database.engine_created", dialect=engine.dialect.name)
    return engine


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create every ledger table that does not exist yet."""
    from midnight_markets.infrastructure.database.orm_models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database.tables_created")

"""Async database engine and session management.

Provides:
    - create_engine_for_url: build an async engine with pool settings where the
      driver supports them (SQLite drivers do not).
    - create_session_factory: an async_sessionmaker bound to that engine.
    - create_tables: create the schema, for development and tests.

Usage:
    db_engine = create_engine_for_url(settings.database_url)
    store = SqlAlchemyDocumentStore(create_session_factory(db_engine))
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from brewmaster_escrow.config import Settings, get_settings
from brewmaster_escrow.logging_config import get_logger

logger = get_logger(__name__)


def create_engine_for_url(
    database_url: str,
    echo: bool = False,
    settings: Settings | None = None,
) -> AsyncEngine:
    """Create an async engine, applying pool settings for server databases."""
    if database_url.startswith("sqlite"):
        return create_async_engine(database_url, echo=echo)

    settings = settings or get_settings()
    engine = create_async_engine(
        database_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_timeout=settings.db_pool_timeout,
        pool_pre_ping=True,
        echo=echo,
    )
    logger.info(
        "database.engine_created",
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
    )
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_tables(engine: AsyncEngine) -> None:
    """Create all tables. Outside development the schema is owned by the deployment."""
    from brewmaster_escrow.infrastructure.database.orm_models import Base

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("database.tables_created")

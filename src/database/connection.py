"""
Async engine and session factory for the SQL storage backend.

PostgreSQL runs through asyncpg with a bounded connection pool. SQLite
(aiosqlite, used by the test-suite) shares one connection across sessions so
that an in-memory database lives as long as its engine.
"""

from typing import Any, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from src.core.config import Settings, get_settings
from src.core.logging import get_logger
from src.database.base import Base

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def convert_database_url_to_async(url: str) -> str:
    """Select the asyncpg driver for plain ``postgresql://`` URLs."""
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://") :]
    return url


def _engine_options(url: str, settings: Settings) -> dict[str, Any]:
    if url.startswith("sqlite"):
        return {
            "poolclass": StaticPool,
            "connect_args": {"check_same_thread": False},
        }
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_pre_ping": True,
        "pool_recycle": 3600,
        "connect_args": {
            "server_settings": {"application_name": settings.app_name},
            "command_timeout": 60,
            "timeout": 10,
        },
    }


def create_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create an async engine for ``database_url`` or the configured URL.

    SQL echo follows the ``debug`` setting.
    """
    settings = get_settings()
    url = convert_database_url_to_async(database_url or settings.database_url)
    engine = create_async_engine(
        url, echo=settings.debug, **_engine_options(url, settings)
    )
    logger.info("Database engine created", dialect=engine.dialect.name)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Repositories read attributes after commit when mapping rows back to aggregates
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=False)


def get_engine() -> AsyncEngine:
    """
    Return the process-wide engine, creating it on first use.

    Raises:
        RuntimeError: If the engine cannot be created
    """
    global _engine

    if _engine is None:
        try:
            _engine = create_engine()
        except Exception as e:
            logger.error(
                "Failed to create database engine",
                error=str(e),
                error_type=type(e).__name__,
            )
            raise RuntimeError(f"Database engine initialization failed: {e}") from e
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    global _session_factory

    if _session_factory is None:
        _session_factory = create_session_factory(get_engine())
    return _session_factory


async def create_tables(engine: Optional[AsyncEngine] = None) -> None:
    """Create any missing engine tables; existing ones are left untouched."""
    from src.database import models  # noqa: F401

    engine = engine or get_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables ensured", tables=sorted(Base.metadata.tables))


async def check_database() -> bool:
    async with get_engine().connect() as conn:
        await conn.execute(text("SELECT 1"))
    return True


async def dispose_engine() -> None:
    """Close pooled connections and forget the process-wide engine."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None

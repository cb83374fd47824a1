"""
Async database engine and unit-of-work sessions.

One session spans one order operation: ``get_session`` commits when the
block exits normally and rolls back when it raises, so stock changes and
order rows written inside the block land together or not at all.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import NullPool

from orderhub.core.config import Settings, get_settings
from orderhub.core.logging import get_logger

logger = get_logger(__name__)

_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker[AsyncSession]] = None


def _convert_database_url_to_async(url: str) -> str:
    """Point a plain postgresql:// URL at the asyncpg driver."""
    if url.startswith("postgresql://"):
        return "postgresql+asyncpg://" + url[len("postgresql://"):]
    return url


def _pool_options(settings: Settings) -> dict:
    if settings.environment == "test":
        return {"poolclass": NullPool}
    return {
        "pool_size": settings.db_pool_size,
        "max_overflow": settings.db_max_overflow,
        "pool_recycle": 3600,
        "pool_pre_ping": True,
    }


def create_engine(settings: Optional[Settings] = None) -> AsyncEngine:
    """
    Build an async engine for the configured database.

    Args:
        settings: Settings to use, the cached application settings by default

    Returns:
        New AsyncEngine; the caller owns its disposal
    """
    settings = settings or get_settings()

    engine = create_async_engine(
        _convert_database_url_to_async(settings.database_url),
        echo=settings.debug,
        connect_args={
            "server_settings": {"application_name": settings.app_name},
            "command_timeout": 60,
            "timeout": 10,
        },
        **_pool_options(settings),
    )

    logger.info(
        "Database engine created",
        environment=settings.environment,
        pooled=settings.environment != "test",
    )
    return engine


def init_database(settings: Optional[Settings] = None) -> async_sessionmaker[AsyncSession]:
    """
    Create the shared engine and session factory if they do not exist yet.

    Raises:
        RuntimeError: If the engine cannot be created
    """
    global _engine, _session_factory

    if _session_factory is not None:
        return _session_factory

    try:
        _engine = create_engine(settings)
    except Exception as e:
        logger.error(
            "Failed to create database engine",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise RuntimeError(f"Database engine initialization failed: {e}") from e

    # objects stay usable after commit; order results are read after the block
    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    return _session_factory


def get_engine() -> AsyncEngine:
    init_database()
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return init_database()


@asynccontextmanager
async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Open a unit-of-work session.

    Yields:
        Session committed on normal exit and rolled back on error
    """
    session = get_session_factory()()

    try:
        yield session
        await session.commit()
    except Exception as e:
        await session.rollback()
        logger.warning(
            "Database session rolled back",
            error=str(e),
            error_type=type(e).__name__,
        )
        raise
    finally:
        await session.close()


async def dispose_engine() -> None:
    """Dispose the shared engine so the next session starts a new one."""
    global _engine, _session_factory

    if _engine is not None:
        await _engine.dispose()
        logger.info("Database engine disposed")
    _engine = None
    _session_factory = None

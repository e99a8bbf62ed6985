"""Database configuration and session management."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from .settings import Settings, get_settings

logger = logging.getLogger(__name__)

# SQLAlchemy Base for ORM models
Base = declarative_base()


def to_async_url(database_url: str) -> str:
    """Map a plain database URL onto its async driver."""
    if database_url.startswith("postgresql://"):
        return database_url.replace("postgresql://", "postgresql+asyncpg://", 1)
    if database_url.startswith("sqlite://"):
        return database_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return database_url


class DatabaseManager:
    """Database connection and session management.

    The engine is created on first use so that importing the application
    never opens a connection pool.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self._settings = settings or get_settings()
        self._async_engine: Optional[AsyncEngine] = None
        self._session_factory: Optional[async_sessionmaker] = None

    @property
    def engine(self) -> AsyncEngine:
        if self._async_engine is None:
            url = to_async_url(self._settings.database_url)
            engine_kwargs = {"echo": self._settings.debug}
            if url.startswith("postgresql"):
                engine_kwargs.update(
                    pool_size=self._settings.database_pool_size,
                    max_overflow=self._settings.database_max_overflow,
                    pool_timeout=self._settings.database_pool_timeout,
                    pool_recycle=self._settings.database_pool_recycle,
                )
            self._async_engine = create_async_engine(url, **engine_kwargs)
        return self._async_engine

    @property
    def session_factory(self) -> async_sessionmaker:
        if self._session_factory is None:
            self._session_factory = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False,
                autoflush=False,
            )
        return self._session_factory

    async def connect(self) -> None:
        """Initialize database connections."""
        try:
            async with self.engine.begin() as conn:
                await conn.execute(text("SELECT 1"))
                if self._settings.auto_create_schema:
                    # Models must be registered on Base before create_all
                    import storebuilder.models  # noqa: F401

                    await conn.run_sync(Base.metadata.create_all)
                    logger.info("Database schema ensured")
            logger.info("Database async connection established")
        except Exception as e:
            logger.error(f"Failed to connect to database: {e}")
            raise

    async def disconnect(self) -> None:
        """Close database connections."""
        if self._async_engine is None:
            return
        try:
            await self._async_engine.dispose()
            logger.info("Database connections closed")
        except Exception as e:
            logger.error(f"Error closing database connections: {e}")
        finally:
            self._async_engine = None
            self._session_factory = None

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get async database session."""
        async with self.session_factory() as session:
            try:
                yield session
            except Exception:
                await session.rollback()
                raise


# Global database manager instance
_db_manager = DatabaseManager()


def get_database() -> DatabaseManager:
    """Get the database manager instance."""
    return _db_manager


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Dependency to get database session for FastAPI."""
    async with _db_manager.get_session() as session:
        yield session

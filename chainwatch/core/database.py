"""
Database configuration and session management.
Uses SQLAlchemy 2.0 with async support.
"""

import asyncio
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine
)

from .config import settings, Settings, DatabaseConfig
from .exceptions import StoreConnectionError
from .logging import get_logger

logger = get_logger(__name__)


class Database:
    """
    Owns the async engine and session maker for one process.

    The engine is created lazily on first use and recreated after
    ``disconnect()``; there is no module-level instance, callers pass the
    object to whatever needs a session.
    """

    def __init__(self, config: Optional[Settings] = None):
        self.config = config or settings
        # Fail fast on a missing URL, before anything tries to connect
        self.url = DatabaseConfig.get_database_url(self.config)
        self.engine: Optional[AsyncEngine] = None
        self.session_maker: Optional[async_sessionmaker[AsyncSession]] = None
        self._connect_lock = asyncio.Lock()
        self.logger = logger.bind(service="database")

    @property
    def is_connected(self) -> bool:
        return self.engine is not None

    async def connect(self) -> None:
        """Create the engine and verify the connection with a ping."""
        async with self._connect_lock:
            if self.engine is not None:
                return

            self.logger.info("Initializing database connection")
            engine = create_async_engine(self.url, **DatabaseConfig.get_engine_config(self.config))
            try:
                async with engine.connect() as conn:
                    await conn.execute(text("SELECT 1"))
            except (SQLAlchemyError, OSError) as e:
                await engine.dispose()
                self.logger.error("Error connecting to database", error=str(e))
                raise StoreConnectionError(
                    f"Could not connect to database: {e}",
                    {"error_type": type(e).__name__}
                ) from e

            self.engine = engine
            self.session_maker = async_sessionmaker(
                engine,
                class_=AsyncSession,
                expire_on_commit=False
            )
            self.logger.info("Database connection verified")

    async def disconnect(self) -> None:
        """Dispose the engine; the next session reconnects."""
        async with self._connect_lock:
            if self.engine is None:
                return
            self.logger.info("Closing database connection")
            await self.engine.dispose()
            self.engine = None
            self.session_maker = None
            self.logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get an async database session with automatic cleanup.

        Usage:
            async with database.session() as session:
                # Use session here
                pass
        """
        if self.session_maker is None:
            await self.connect()

        async with self.session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """Create all tables in the database."""
        from chainwatch.models.base import Base

        if self.engine is None:
            await self.connect()

        self.logger.info("Creating database tables")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        self.logger.info("Database tables created")

    async def drop_tables(self) -> None:
        """Drop all tables in the database."""
        from chainwatch.models.base import Base

        if self.engine is None:
            await self.connect()

        self.logger.warning("Dropping all database tables")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.drop_all)
        self.logger.info("Database tables dropped")

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except (SQLAlchemyError, OSError, StoreConnectionError) as e:
            self.logger.error("Database health check failed", error=str(e))
            return False

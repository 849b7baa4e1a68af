"""
Database configuration and session management.
Uses SQLAlchemy 2.0 with async support.
"""

from pathlib import Path
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
    AsyncEngine
)

from .config import Settings, DatabaseConfig
from .logging import get_logger

logger = get_logger(__name__)


class Database:
    """Owns the async engine and session factory for one database URL."""

    def __init__(self, url: str, echo: bool = False, engine_config: Optional[dict] = None):
        self.url = DatabaseConfig.get_database_url(url)
        self.echo = echo
        self.engine_config = engine_config or {}
        self.engine: Optional[AsyncEngine] = None
        self.session_maker: Optional[async_sessionmaker[AsyncSession]] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> "Database":
        return cls(
            settings.database_url,
            echo=settings.database_echo,
            engine_config=DatabaseConfig.get_engine_config(settings),
        )

    @property
    def is_sqlite(self) -> bool:
        return self.url.startswith("sqlite")

    async def init(self) -> None:
        """Initialize the engine and session maker."""
        if self.engine is not None:
            return

        logger.info("Initializing database connection", backend=make_url(self.url).get_backend_name())

        if self.is_sqlite:
            database = make_url(self.url).database
            if database and database != ":memory:":
                Path(database).parent.mkdir(parents=True, exist_ok=True)

        self.engine = create_async_engine(self.url, echo=self.echo, **self.engine_config)
        self.session_maker = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

        logger.info("Database connection initialized")

    async def close(self) -> None:
        """Close database connections."""
        if self.engine is not None:
            await self.engine.dispose()
            self.engine = None
            self.session_maker = None
            logger.info("Database connection closed")

    @asynccontextmanager
    async def session(self) -> AsyncGenerator[AsyncSession, None]:
        """
        Get an async database session with automatic commit/rollback.

        Usage:
            async with database.session() as session:
                # Use session here
                pass
        """
        if self.session_maker is None:
            raise RuntimeError("Database not initialized. Call init() first.")

        async with self.session_maker() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def create_tables(self) -> None:
        """Create all ledger tables."""
        from holder_rewards.models.base import Base

        if self.engine is None:
            raise RuntimeError("Database not initialized")

        logger.info("Creating database tables")
        async with self.engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        logger.info("Database tables created")

    async def health_check(self) -> bool:
        """Check database connectivity."""
        try:
            async with self.session() as session:
                await session.execute(text("SELECT 1"))
            return True
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

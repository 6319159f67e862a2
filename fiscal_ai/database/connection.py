import logging
import re
from typing import AsyncGenerator, Optional
from contextlib import asynccontextmanager
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession, AsyncEngine, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from ..config import settings
from .models import Base

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Database connection and session management"""

    def __init__(self, database_url: Optional[str] = None, echo: Optional[bool] = None):
        self.database_url = database_url or settings.database_url
        self.echo = settings.debug if echo is None else echo
        self.engine: Optional[AsyncEngine] = None
        self.SessionLocal: Optional[async_sessionmaker] = None
        self._is_initialized = False

    async def initialize(self) -> bool:
        """Initialize database engine and session factory"""
        try:
            if ":memory:" in self.database_url:
                # Single shared connection so the in-memory database survives across sessions
                self.engine = create_async_engine(
                    self.database_url,
                    poolclass=StaticPool,
                    connect_args={"check_same_thread": False},
                    echo=self.echo,
                )
            elif "sqlite" in self.database_url:
                self.engine = create_async_engine(
                    self.database_url,
                    connect_args={"check_same_thread": False, "timeout": 30},
                    echo=self.echo,
                )
            else:
                self.engine = create_async_engine(
                    self.database_url,
                    pool_size=20,
                    max_overflow=10,
                    pool_timeout=30,
                    pool_recycle=3600,
                    pool_pre_ping=True,
                    echo=self.echo,
                )

            self.SessionLocal = async_sessionmaker(
                self.engine,
                class_=AsyncSession,
                expire_on_commit=False
            )

            async with self.engine.begin() as conn:
                await conn.execute(text("SELECT 1"))

            self._is_initialized = True
            logger.info(f"Database initialized successfully: {self._get_safe_url()}")
            return True

        except Exception as e:
            logger.error(f"Database initialization failed: {e}")
            return False

    def _get_safe_url(self) -> str:
        """Get database URL with credentials masked for logging"""
        if not self.database_url:
            return "None"
        return re.sub(r'://([^:]+):([^@]+)@', r'://\1:***@', self.database_url)

    async def create_tables(self) -> bool:
        """Create all database tables"""
        try:
            if not self.engine:
                raise RuntimeError("Database not initialized")

            async with self.engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)

            logger.info("Database tables created successfully")
            return True

        except Exception as e:
            logger.error(f"Failed to create tables: {e}")
            return False

    @asynccontextmanager
    async def get_session(self) -> AsyncGenerator[AsyncSession, None]:
        """Get database session; commits on success, rolls back on error"""
        if not self._is_initialized:
            raise RuntimeError("Database not initialized")

        async with self.SessionLocal() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    async def health_check(self) -> dict:
        """Check database health"""
        if not self._is_initialized:
            return {
                "status": "unhealthy",
                "error": "Database not initialized"
            }

        try:
            async with self.get_session() as session:
                await session.execute(text("SELECT 1"))

            return {
                "status": "healthy",
                "database_url": self._get_safe_url(),
            }

        except Exception as e:
            return {
                "status": "unhealthy",
                "error": str(e),
                "database_url": self._get_safe_url()
            }

    async def cleanup(self):
        """Clean up database connections"""
        try:
            if self.engine:
                await self.engine.dispose()
                self.engine = None

            self.SessionLocal = None
            self._is_initialized = False
            logger.info("Database cleanup complete")

        except Exception as e:
            logger.error(f"Error during database cleanup: {e}")

    def is_initialized(self) -> bool:
        return self._is_initialized

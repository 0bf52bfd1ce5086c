"""Async SQLAlchemy engine, session factory and database client.

The API process and the Temporal worker share this module; activities open
their own short-lived sessions through ``async_session_maker``.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from compliance_jobs.core.config import settings
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


engine = create_async_engine(
    settings.database_url,
    pool_size=settings.db.pool_size,
    max_overflow=settings.db.max_overflow,
    echo=settings.db.echo,
    pool_pre_ping=True,
    # Disable prepared statement cache for PgBouncer compatibility
    connect_args={"statement_cache_size": 0},
)

async_session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


class DatabaseClient:
    """PostgreSQL database client with connection and schema management."""

    def __init__(self, engine: AsyncEngine):
        self.engine = engine

    async def connect(self) -> bool:
        """Test database connection."""
        try:
            async with self.engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            LOGGER.info("Database connection successful")
            return True
        except Exception:
            LOGGER.error("Database connection failed", exc_info=True)
            raise

    async def disconnect(self) -> None:
        """Dispose of the engine pool."""
        try:
            await self.engine.dispose()
            LOGGER.info("Database connection closed")
        except Exception as e:
            LOGGER.error("Error closing database connection", exc_info=True, extra={"error": str(e)})

    async def create_tables(self) -> None:
        """Create tables that don't exist yet; existing tables are left alone."""
        # Register every mapped class on Base.metadata
        from compliance_jobs.database import models  # noqa: F401

        try:
            async with self.engine.begin() as conn:
                await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                await conn.run_sync(Base.metadata.create_all)
            LOGGER.info("Database tables created/verified successfully")
        except Exception as e:
            LOGGER.error("Failed to create database tables", exc_info=True, extra={"error": str(e)})
            raise

    async def health_check(self) -> dict:
        """Check database health."""
        try:
            async with self.engine.connect() as conn:
                val = await conn.scalar(text("SELECT 1"))
            return {
                "status": "healthy",
                "connected": True,
                "database": "postgresql",
                "latency_test": "passed" if val == 1 else "failed",
            }
        except Exception as e:
            LOGGER.error("Database health check failed", extra={"error": str(e)})
            return {
                "status": "unhealthy",
                "connected": False,
                "error": str(e),
            }


db_client = DatabaseClient(engine)


async def init_database(create_tables: bool = False) -> None:
    """Initialize database connection and optionally create missing tables."""
    LOGGER.info("Initializing database connection...")
    await db_client.connect()
    if create_tables:
        await db_client.create_tables()
    LOGGER.info("Database initialization completed")


async def close_database() -> None:
    """Close database connection."""
    LOGGER.info("Closing database connection...")
    await db_client.disconnect()

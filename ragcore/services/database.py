"""
Database service handling PostgreSQL connections and schema setup.
"""

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
)
import logging

from ..config.database import PostgresConfig
from ..models.documents import Base

logger = logging.getLogger(__name__)


def create_async_db_engine(config: PostgresConfig) -> AsyncEngine:
    """Create async database engine with connection pooling."""
    return create_async_engine(
        config.sqlalchemy_url,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        pool_recycle=config.pool_recycle,
        pool_pre_ping=config.pool_pre_ping,
        echo=False
    )


def create_async_session_maker(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create async session maker."""
    return async_sessionmaker(
        engine,
        expire_on_commit=False,
        class_=AsyncSession
    )


async def init_database(engine: AsyncEngine):
    """Enable pgvector and create the document tables if missing."""
    async with engine.begin() as conn:
        await conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database schema initialized")

"""
tabulation/database.py
Database configuration for the SQL-backed remote store
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker

from tabulation.config import get_settings
from tabulation.orm.base import Base
import tabulation.orm  # ensures all models are registered
from tabulation.store import RemoteStore, SQLAlchemyStore

logger = logging.getLogger(__name__)


def build_engine(database_url: Optional[str] = None) -> AsyncEngine:
    """
    Create the async engine.

    SQLite has different pool needs than PostgreSQL.
    """
    url = database_url or get_settings().database_url

    if "sqlite" in url.lower():
        return create_async_engine(
            url,
            echo=False,
            future=True,
            connect_args={
                "timeout": 30.0,   # SQLite busy timeout in seconds
            }
        )

    return create_async_engine(
        url,
        echo=False,
        future=True,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=3600,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


engine = build_engine()
AsyncSessionLocal = build_session_factory(engine)


def get_store() -> RemoteStore:
    """Dependency for the SQL-backed remote store"""
    return SQLAlchemyStore(AsyncSessionLocal)


async def init_db(target: Optional[AsyncEngine] = None):
    """Create any missing tables. Idempotent: safe to run multiple times."""
    target = target or engine
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("✓ Tabulation tables ready")


async def close_db(target: Optional[AsyncEngine] = None):
    target = target or engine
    await target.dispose()

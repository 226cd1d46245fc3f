"""
Database session management with SQLAlchemy async
"""

from sqlalchemy.ext.asyncio import create_async_engine, AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def build_engine(database_url: str = None) -> AsyncEngine:
    """Create the async engine used by the postgres sink"""
    url = database_url or settings.DATABASE_URL
    logger.debug(f"Creating engine for {url.split('@')[1] if '@' in url else 'configured database'}")
    return create_async_engine(
        url,
        echo=False,
        poolclass=NullPool,  # For async, connection pooling handled differently
        future=True
    )


def build_session_maker(engine: AsyncEngine) -> async_sessionmaker:
    """Create session factory bound to an engine"""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )

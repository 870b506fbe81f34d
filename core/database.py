"""
Database session management with SQLAlchemy async
"""

from sqlalchemy import event
from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool
from core.config import settings
import logging

logger = logging.getLogger(__name__)


def configure_sqlite(engine: AsyncEngine) -> None:
    """
    Register SQLite pragmas on every new connection.
    
    WAL lets partition cursors keep a read open while sibling workers
    commit checkpoints; busy_timeout absorbs short writer contention.
    """
    
    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA journal_mode=WAL")
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.execute("PRAGMA busy_timeout=5000")
        cursor.close()


def create_engine_for(url: str, echo: bool = False) -> AsyncEngine:
    """Create an async engine, applying SQLite configuration when needed"""
    engine = create_async_engine(
        url,
        echo=echo,
        poolclass=NullPool,  # Each cursor owns its connection for the whole scan
    )
    if make_url(url).get_backend_name() == "sqlite":
        configure_sqlite(engine)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False
    )


# Create async engine
engine = create_engine_for(settings.DATABASE_URL, echo=settings.ENVIRONMENT == "development")

# Create session factory
async_session_maker = create_session_factory(engine)


async def get_session() -> AsyncSession:
    """Get database session"""
    async with async_session_maker() as session:
        yield session

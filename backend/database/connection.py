from typing import Optional
from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy import text
from dotenv import load_dotenv
from pathlib import Path
import logging

logger = logging.getLogger(__name__)

# Load environment variables
ROOT_DIR = Path(__file__).parent.parent
load_dotenv(ROOT_DIR / '.env')

# Created on first use so models and the engine can be imported without a database
_engine: Optional[AsyncEngine] = None
_session_factory: Optional[async_sessionmaker] = None


class Base(DeclarativeBase):
    pass


def get_engine() -> AsyncEngine:
    """Return the process-wide async engine, creating it from settings."""
    global _engine
    if _engine is None:
        from config import get_settings

        settings = get_settings()
        database_url = settings.get_database_url()
        connect_args = {}
        if settings.POSTGRES_SSLMODE == "require" and "ssl=" not in database_url:
            connect_args["ssl"] = "require"

        _engine = create_async_engine(
            database_url,
            echo=False,
            pool_pre_ping=True,
            pool_size=5,
            max_overflow=10,
            connect_args=connect_args
        )
    return _engine


def get_session_factory() -> async_sessionmaker:
    global _session_factory
    if _session_factory is None:
        _session_factory = async_sessionmaker(
            get_engine(),
            class_=AsyncSession,
            expire_on_commit=False,
            autocommit=False,
            autoflush=False
        )
    return _session_factory


async def get_db():
    """Dependency to get database session"""
    async with get_session_factory()() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db():
    """Initialize database connection and verify the entry tables exist"""
    from entries.models import ENTRY_TABLES

    try:
        async with get_engine().begin() as conn:
            await conn.execute(text("SELECT 1"))
            logger.info("PostgreSQL connection successful")

            tables_query = text("""
                SELECT table_name
                FROM information_schema.tables
                WHERE table_schema = 'public'
            """)
            result = await conn.execute(tables_query)
            tables = {row[0] for row in result.fetchall()}

            missing = [t for t in ENTRY_TABLES if t not in tables]
            if missing:
                logger.warning(f"Missing entry tables: {missing}. Run database/init_entry_db.py create")
            else:
                logger.info(f"All {len(ENTRY_TABLES)} entry tables present")

            return not missing
    except Exception as e:
        logger.error(f"Database initialization error: {e}")
        raise


async def dispose_engine():
    """Close pooled connections (application shutdown)"""
    global _engine, _session_factory
    if _engine is not None:
        await _engine.dispose()
    _engine = None
    _session_factory = None

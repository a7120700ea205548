import sys
import logging
from sqlalchemy import event
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.orm import declarative_base
from sqlalchemy.pool import NullPool
from .config import settings

logger = logging.getLogger(__name__)

Base = declarative_base()


def _engine_options(database_url: str) -> dict:
    options = {"echo": settings.DB_ECHO}
    if database_url.startswith("sqlite"):
        # One connection per session; aiosqlite connections are bound to the loop that opened them
        options["poolclass"] = NullPool
    else:
        options["pool_size"] = settings.DB_POOL_SIZE
        options["max_overflow"] = settings.DB_MAX_OVERFLOW
        options["pool_pre_ping"] = True
    return options


def build_engine(database_url: str):
    """Create an async engine; sqlite connections get foreign key enforcement."""
    new_engine = create_async_engine(database_url, **_engine_options(database_url))
    if database_url.startswith("sqlite"):
        @event.listens_for(new_engine.sync_engine, "connect")
        def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
            cursor = dbapi_connection.cursor()
            cursor.execute("PRAGMA foreign_keys=ON")
            cursor.close()
    return new_engine


engine = build_engine(settings.DATABASE_URL)

AsyncSessionLocal = async_sessionmaker(
    bind=engine,
    class_=AsyncSession,
    autoflush=False,
    expire_on_commit=False,
)


async def get_db():
    async with AsyncSessionLocal() as session:
        yield session


async def create_db_and_tables():
    # Register models on Base.metadata
    from . import models  # noqa: F401

    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    except Exception as e:
        message = str(e)
        if "does not exist" in message:
            logger.error(f"FATAL: Database does not exist: {message}")
        elif "Name or service not known" in message or "nodename nor servname" in message:
            logger.error(f"FATAL: Could not resolve database host: {message}")
        elif "password authentication failed" in message:
            logger.error(f"FATAL: Database authentication failed: {message}")
        elif "Connection refused" in message:
            logger.error(f"FATAL: Database connection refused: {message}")
        else:
            logger.error(f"FATAL: Could not create database tables: {message}")
        sys.exit(1)

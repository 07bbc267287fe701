"""
Database connection and session management using SQLAlchemy async mode.
"""

from sqlalchemy.ext.asyncio import (
    create_async_engine,
    AsyncSession,
    async_sessionmaker,
    AsyncEngine,
)
from sqlalchemy.orm import DeclarativeBase

from kissa import config

# Create async engine
engine: AsyncEngine = create_async_engine(
    config.DATABASE_URL,
    echo=config.SQL_ECHO,
    future=True,
    pool_pre_ping=True,  # Verify connections before using them
)

# Create async session factory
AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
    autocommit=False,
    autoflush=False,
)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""
    pass


# Import models to register them with Base.metadata
# This must be after Base is defined to avoid circular imports
from kissa.database import models  # noqa: F401, E402


async def init_database(bind: AsyncEngine = None):
    """Initialize the database by creating all tables."""
    async with (bind or engine).begin() as conn:
        # checkfirst=True means it won't error if tables already exist
        def create_tables(sync_conn):
            Base.metadata.create_all(bind=sync_conn, checkfirst=True)
        await conn.run_sync(create_tables)

"""
Database setup and session management for Book Imbiber.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from imbiber.config import StaticConfig


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


# Create async engine using static configuration
engine = create_async_engine(
    StaticConfig.DATABASE_URL,
    echo=StaticConfig.DEBUG,
)

# Create async session factory
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """Dependency for getting database sessions."""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def init_db(bind: AsyncEngine | None = None) -> None:
    """Initialize the database, creating all tables."""
    # Import models to register them with Base
    from imbiber import models  # noqa: F401

    async with (bind or engine).begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

"""Database engine and session configuration."""

from datetime import datetime, timezone
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import NullPool

from streamforge.core.config import settings


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""

    pass


def utcnow() -> datetime:
    """Timezone-aware current time, used as the default for timestamp columns."""
    return datetime.now(timezone.utc)


def create_session_maker(
    database_url: str,
    use_null_pool: bool = False,
    echo: bool = False,
) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to a new engine.

    Worker processes run each job in a fresh event loop, so they use a
    NullPool engine to avoid reusing connections across loops.

    Args:
        database_url: SQLAlchemy async database URL
        use_null_pool: Disable connection pooling
        echo: Echo SQL statements

    Returns:
        Session factory producing AsyncSession instances
    """
    engine_kwargs = {"echo": echo}
    if use_null_pool:
        engine_kwargs["poolclass"] = NullPool

    engine = create_async_engine(database_url, **engine_kwargs)
    return async_sessionmaker(engine, expire_on_commit=False)


async_session_maker = create_session_maker(settings.DATABASE_URL, echo=settings.DEBUG)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency yielding a database session."""
    async with async_session_maker() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise

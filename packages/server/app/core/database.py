"""
Database engine and session management.

The engine is built lazily from settings so operator scripts and tests can
point the same helpers at a different URL (e.g. ``sqlite+aiosqlite://``).
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel

from app.core.config import get_settings

settings = get_settings()


def build_engine(url: str, *, echo: bool = False) -> AsyncEngine:
    """Create an async engine.

    In-memory SQLite shares one connection so every session sees the same tables.
    """
    kwargs: dict = {"echo": echo, "future": True}
    if url.startswith("sqlite"):
        kwargs["connect_args"] = {"check_same_thread": False}
        if ":memory:" in url or url.endswith("://"):
            kwargs["poolclass"] = StaticPool
    return create_async_engine(url, **kwargs)


def build_session_factory(bind: AsyncEngine) -> sessionmaker:
    return sessionmaker(bind, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.database_url, echo=settings.debug)
async_session_factory = build_session_factory(engine)


async def init_db(bind: AsyncEngine = engine) -> None:
    """Create all tables (development and tests only, use alembic in production)."""
    import app.models  # noqa: F401  populate metadata

    async with bind.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """FastAPI dependency for database sessions."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


@asynccontextmanager
async def get_session_context(factory: sessionmaker = async_session_factory):
    """Context manager for use outside of the request lifecycle."""
    async with factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise

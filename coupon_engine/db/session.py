from collections.abc import AsyncIterator
from typing import Any

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from coupon_engine.core.config import settings


def build_engine(database_url: str, **kwargs: Any) -> AsyncEngine:
    """Async engine for PostgreSQL (asyncpg) or SQLite (aiosqlite)."""
    if database_url.startswith("sqlite"):
        kwargs.setdefault("connect_args", {"check_same_thread": False})
    return create_async_engine(database_url, future=True, **kwargs)


def build_sessionmaker(bind: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    # Coupons stay readable after commit; the coordinator reports them back to callers.
    return async_sessionmaker(bind, expire_on_commit=False, autoflush=False, class_=AsyncSession)


engine = build_engine(settings.database_url)
SessionLocal = build_sessionmaker(engine)


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency to provide a database session."""
    async with SessionLocal() as session:
        yield session

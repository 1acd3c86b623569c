from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine

from voiceup.core.settings import settings

def make_engine(url: str | None = None) -> AsyncEngine:
    return create_async_engine(url or settings.database_url, pool_pre_ping=True)

def make_sessionmaker(engine: AsyncEngine) -> async_sessionmaker:
    # rows are handed out after commit, keep their loaded state
    return async_sessionmaker(engine, expire_on_commit=False)

engine = make_engine()
AsyncSessionLocal = make_sessionmaker(engine)

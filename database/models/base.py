from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.pool import StaticPool

from core.config_loader import Settings


class Base(DeclarativeBase):
    pass


def get_async_engine(settings: Settings) -> AsyncEngine:
    """Create and return an asynchronous SQLAlchemy engine.

    The engine uses the database URL and pooling parameters provided by the
    Settings instance. No global engine is created; callers are responsible
    for managing the engine lifecycle.
    """
    db_url = settings.database_url
    if db_url.startswith("sqlite"):
        # SQLite pools are managed by the dialect; an in-memory database must
        # stay on a single connection to remain visible to every session.
        if ":memory:" in db_url or db_url.rstrip("/").endswith("sqlite+aiosqlite:"):
            return create_async_engine(db_url, poolclass=StaticPool)
        return create_async_engine(db_url)

    return create_async_engine(
        db_url,
        pool_size=settings.db_pool_size,
        max_overflow=settings.db_max_overflow,
        pool_recycle=settings.db_pool_recycle_seconds,
        pool_pre_ping=True,
    )

# db.py
from collections.abc import AsyncGenerator

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    create_async_engine,
    async_sessionmaker,
)

from config import settings
from db_base import Base  # <- import Base from separate module


# ---------- Engine & Session (async) ----------

def build_engine(url: str | None) -> AsyncEngine | None:
    """
    Create the async engine for the remote record store.

    Returns None when no DATABASE_URL is configured; the service then runs
    in cache-only mode.
    """
    if not url:
        return None
    return create_async_engine(
        url,  # e.g. postgresql+asyncpg://...
        echo=settings.DEBUG,
        future=True,
    )


engine = build_engine(settings.DATABASE_URL)

AsyncSessionLocal = (
    async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
        autocommit=False,
    )
    if engine is not None
    else None
)


# ---------- Optional init helper (for dev only) ----------

async def init_db() -> None:
    """
    Optional helper to create tables from ORM metadata.

    In production, prefer Alembic migrations.
    """
    # Import models so they are registered on Base.metadata
    import db_models  # noqa: F401

    if engine is None:
        return
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


# ---------- FastAPI dependency ----------

async def get_session() -> AsyncGenerator[AsyncSession | None, None]:
    """Provide an async DB session, or None in cache-only mode."""
    if AsyncSessionLocal is None:
        yield None
        return
    async with AsyncSessionLocal() as session:
        yield session


def get_sessionmaker() -> async_sessionmaker | None:
    """Session factory for consumers that outlive a request (event streams)."""
    return AsyncSessionLocal

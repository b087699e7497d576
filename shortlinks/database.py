"""Database engine and session factory for the short-link service.

This module provides SQLAlchemy async engine setup and session factory
construction using PostgreSQL as the backend. Nothing is created at import
time: the service manager builds the engine on startup and hands the session
factory to ``SQLAlchemyLinkStore``.

How to Use
===========
**Step 1 — Initialize on startup**::
    engine = create_engine(settings)
    await init_db(engine)  # Creates tables
    session_factory = create_session_factory(engine)

**Step 2 — Cleanup on shutdown**::
    await close_db(engine)

Key Behaviours
===============
- Connection pooling is configured for production workloads.
- ``pool_pre_ping`` drops dead connections before they reach a request.
- Tables are created on application startup.

Classes:
    Base:  SQLAlchemy declarative base for all models.

Functions:
    create_engine():  Builds the async engine from settings.
    create_session_factory():  Builds the session factory for an engine.
    init_db():  Creates all tables on startup.
    close_db():  Disposes the engine on shutdown.
"""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from shortlinks.config import Settings

__all__ = ["Base", "create_engine", "create_session_factory", "init_db", "close_db"]


class Base(DeclarativeBase):
    pass


def create_engine(settings: Settings) -> AsyncEngine:
    return create_async_engine(
        settings.DATABASE_URL,
        echo=False,
        pool_size=settings.DATABASE_POOL_SIZE,
        max_overflow=settings.DATABASE_MAX_OVERFLOW,
        pool_pre_ping=True,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def init_db(engine: AsyncEngine) -> None:
    # Register the models on Base.metadata before create_all.
    import shortlinks.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db(engine: AsyncEngine) -> None:
    await engine.dispose()

"""Async engine and session factory for the submissions store.

The URL comes from ``DB_URL``. PostgreSQL (asyncpg) is the production
backend; SQLite (aiosqlite) is used for tests and local experiments.
"""

from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy.engine import make_url
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from .config import DatabaseSettings, settings


def is_sqlite(url: str) -> bool:
    return make_url(url).get_backend_name() == "sqlite"


def describe_database(url: str) -> str:
    """Connection URL safe to print or log (password masked)."""
    return make_url(url).render_as_string(hide_password=True)


def build_engine(config: DatabaseSettings) -> AsyncEngine:
    """Create the async engine for ``config``.

    Pool sizing only applies to server databases; SQLite's pool does not
    accept it.
    """
    if is_sqlite(config.url):
        return create_async_engine(config.url, echo=config.echo)
    return create_async_engine(
        config.url,
        echo=config.echo,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_pre_ping=True,
    )


engine: AsyncEngine = build_engine(settings.db)

AsyncSessionMaker = async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


async def get_session() -> AsyncIterator[AsyncSession]:
    """Request-scoped session for ``Depends(get_session)``."""
    async with AsyncSessionMaker() as session:
        yield session

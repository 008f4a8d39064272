"""Database configuration and connection management.

The fast-path store and every country system of record live in separate
databases, each with its own engine and session factory.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from medsaga.config import settings


def to_async_url(url: str) -> str:
    """Convert a sync PostgreSQL URL to the asyncpg driver."""
    return url.replace("postgresql://", "postgresql+asyncpg://", 1)


def build_engine(url: str, pool_size: int = 10) -> AsyncEngine:
    """Create an async engine with connection pooling."""
    return create_async_engine(
        to_async_url(url),
        echo=settings.debug,
        pool_pre_ping=True,
        pool_size=pool_size,
        max_overflow=20,
        pool_recycle=3600,
        connect_args={
            "server_settings": {
                "application_name": settings.app_name,
            },
        },
    )


# Fast-path store
engine: AsyncEngine = build_engine(settings.database_url)

AsyncSessionLocal = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)

# Country stores, created on first use
_country_engines: dict[str, AsyncEngine] = {}
_country_sessionmakers: dict[str, async_sessionmaker[AsyncSession]] = {}


def get_country_engine(country_code: str) -> AsyncEngine:
    """Get or create the engine for a country's system of record."""
    code = country_code.upper()
    if code not in _country_engines:
        _country_engines[code] = build_engine(settings.country_database_url(code), pool_size=5)
    return _country_engines[code]


def get_country_sessionmaker(country_code: str) -> async_sessionmaker[AsyncSession]:
    """Get or create the session factory for a country's system of record."""
    code = country_code.upper()
    if code not in _country_sessionmakers:
        _country_sessionmakers[code] = async_sessionmaker(
            get_country_engine(code),
            class_=AsyncSession,
            expire_on_commit=False,
        )
    return _country_sessionmakers[code]


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Open a session that rolls back on error."""
    async with session_factory() as session:
        try:
            yield session
        except Exception:
            await session.rollback()
            raise


async def check_database_connection(db_engine: AsyncEngine | None = None) -> bool:
    """Check if database connection is healthy."""
    try:
        async with (db_engine or engine).connect() as conn:
            await conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


async def dispose_engines() -> None:
    """Close every pooled connection."""
    await engine.dispose()
    for country_engine in _country_engines.values():
        await country_engine.dispose()
    _country_engines.clear()
    _country_sessionmakers.clear()

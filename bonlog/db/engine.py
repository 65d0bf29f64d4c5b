"""Database engine and the per-request session dependency.

Local runs and the test-suite use SQLite through aiosqlite; deployments point
``DATABASE_URL`` at PostgreSQL and go through asyncpg. Alembic resolves its
URL with ``async_url`` as well, so migrations and the app share one driver.
"""
from __future__ import annotations

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from config.settings import settings

_ASYNC_SCHEMES = {
    "postgres://": "postgresql+asyncpg://",
    "postgresql://": "postgresql+asyncpg://",
    "sqlite:///": "sqlite+aiosqlite:///",
}

# Report bursts and the publish batch share this pool
_PG_POOL = {
    "pool_size": 10,
    "max_overflow": 20,
    "pool_timeout": 30,
    "pool_recycle": 1800,
    "pool_pre_ping": True,
}


def async_url(url: str) -> str:
    """Rewrite a plain ``postgres``/``sqlite`` URL to its async-driver form."""
    for plain, driver in _ASYNC_SCHEMES.items():
        if url.startswith(plain):
            return driver + url[len(plain):]
    return url


def engine_options(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"echo": False}
    return {"echo": False, **_PG_POOL}


_db_url = async_url(settings.DATABASE_URL)
engine = create_async_engine(_db_url, **engine_options(_db_url))

async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_session() -> AsyncSession:
    """FastAPI dependency: one session per request, closed when the response is sent."""
    async with async_session() as session:
        yield session

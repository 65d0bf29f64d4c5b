"""Shared test fixtures — single test DB for all test modules."""
from __future__ import annotations

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from bonlog.db.tables import Base
from bonlog.db.engine import get_session

# Use a shared in-memory DB with check_same_thread=False and StaticPool
# This ensures all connections see the same in-memory database.
from sqlalchemy.pool import StaticPool

TEST_DB_URL = "sqlite+aiosqlite:///file:test?mode=memory&cache=shared&uri=true"

test_engine = create_async_engine(
    TEST_DB_URL,
    echo=False,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)
TestSession = async_sessionmaker(test_engine, expire_on_commit=False, class_=AsyncSession)


async def override_get_session():
    async with TestSession() as session:
        yield session


# Import app and override BEFORE any test module imports app
from bonlog.api.main import app  # noqa: E402

app.dependency_overrides[get_session] = override_get_session

# Background jobs and the DB-backed login tracker open their own sessions
import bonlog.db.engine as _engine_mod  # noqa: E402
_engine_mod.async_session = TestSession
_engine_mod.engine = test_engine


from contextlib import asynccontextmanager  # noqa: E402


@asynccontextmanager
async def get_test_session():
    """Context manager for seeding data in tests."""
    async with TestSession() as session:
        yield session


@pytest_asyncio.fixture(autouse=True)
async def setup_db():
    """Create tables before each test, drop after."""
    import bonlog.db.user_tables  # noqa: F401
    import bonlog.db.content_tables  # noqa: F401
    import bonlog.db.report_tables  # noqa: F401
    import bonlog.db.scheduled_post_tables  # noqa: F401
    import bonlog.db.login_attempt_tables  # noqa: F401
    from bonlog.services.login_tracker import set_login_tracker

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    # Rebuilt from settings on first use (database store on the test engine)
    set_login_tracker(None)

    yield

    # Reset in-process state between tests
    from bonlog.middleware.rate_limit import reset_store
    from bonlog.api.password_reset import reset_token_store
    reset_store()
    reset_token_store()
    set_login_tracker(None)

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture
async def client():
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def session():
    async with TestSession() as s:
        yield s


# ── Seed helpers ─────────────────────────────────────────────────────────────

async def make_user(
    email: str,
    display_name: str | None = None,
    *,
    password: str = "bonsai-pass-1",
    premium: bool = False,
    admin: bool = False,
    suspended: bool = False,
):
    """Insert a user (and optionally an admin grant). Returns the UserRow."""
    from bonlog.auth import hash_password
    from bonlog.db.user_tables import AdminUserRow, UserRow

    async with get_test_session() as s:
        user = UserRow(
            email=email,
            password_hash=hash_password(password),
            display_name=display_name or email.split("@")[0],
            is_premium=premium,
            is_suspended=suspended,
        )
        s.add(user)
        await s.flush()
        if admin:
            s.add(AdminUserRow(user_id=user.id, role="moderator"))
        await s.commit()
        return user


def auth_headers(user) -> dict:
    from bonlog.auth import create_tokens
    return {"Authorization": f"Bearer {create_tokens(user.id)['access_token']}"}


async def make_post(user_id: str, content: str = "Black pine after candle pruning", **kwargs):
    from bonlog.db.tables import PostRow

    async with get_test_session() as s:
        post = PostRow(user_id=user_id, content=content, **kwargs)
        s.add(post)
        await s.commit()
        return post


async def make_row(row):
    """Persist an arbitrary ORM row and return it."""
    async with get_test_session() as s:
        s.add(row)
        await s.commit()
        return row

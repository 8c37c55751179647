"""Shared test configuration and fixtures.

Engine tests are pure and need nothing from here. API tests use a
transactional rollback strategy per test for full isolation:
- Each test gets its own transaction that rolls back after the test.
- The test database `hostcal_test` must exist; API tests are skipped when it
  cannot be reached.
"""

import uuid
from collections.abc import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine

from hostcal.api.deps import get_feed_synchronizer
from hostcal.auth.jwt import create_access_token
from hostcal.config import settings
from hostcal.database import Base, get_db
from hostcal.engine.sync import FeedSynchronizer
from hostcal.main import app
from hostcal.models.property import Property
from hostcal.models.user import User

# ---------------------------------------------------------------------------
# Test database engine — same PG instance, `hostcal_test` DB.
# ---------------------------------------------------------------------------

_base_url = settings.async_database_url
_test_db_url = _base_url.rsplit("/", 1)[0] + "/hostcal_test"


def _make_engine():
    return create_async_engine(
        _test_db_url,
        echo=False,
        pool_pre_ping=True,
    )


# ---------------------------------------------------------------------------
# Session-scoped: create / drop all tables once per test session
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def test_engine():
    """Create a session-scoped engine, skipping when PostgreSQL is unreachable."""
    engine = _make_engine()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (OSError, SQLAlchemyError) as exc:
        await engine.dispose()
        pytest.skip(f"PostgreSQL test database not reachable: {exc}")
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="session", loop_scope="session")
async def setup_test_db(test_engine):
    """Create all tables at the start of the session and drop them at the end."""
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


# ---------------------------------------------------------------------------
# Per-test: transactional rollback for isolation
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(loop_scope="session")
async def db_session(test_engine, setup_test_db) -> AsyncGenerator[AsyncSession, None]:
    """Yield an async session wrapped in a transaction that always rolls back."""
    async with test_engine.connect() as connection:
        transaction = await connection.begin()
        session = AsyncSession(bind=connection, expire_on_commit=False)

        try:
            yield session
        finally:
            await session.close()
            await transaction.rollback()


@pytest.fixture
def feed_payloads() -> dict[str, str | httpx.Response | Exception]:
    """URL → ICS body, canned response, or exception served to the feed synchronizer.

    Tests fill this in; unknown URLs answer 404.
    """
    return {}


@pytest.fixture
def mock_transport(feed_payloads: dict) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        canned = feed_payloads.get(str(request.url))
        if canned is None:
            return httpx.Response(404, text="not found")
        if isinstance(canned, Exception):
            raise canned
        if isinstance(canned, str):
            return httpx.Response(200, text=canned, headers={"Content-Type": "text/calendar"})
        return canned

    return httpx.MockTransport(handler)


@pytest_asyncio.fixture(loop_scope="session")
async def client(db_session: AsyncSession, mock_transport: httpx.MockTransport) -> AsyncGenerator[AsyncClient, None]:
    """Provide an httpx AsyncClient wired to the test DB session and a mocked feed transport."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    feed_client = httpx.AsyncClient(transport=mock_transport)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_feed_synchronizer] = lambda: FeedSynchronizer(feed_client, timeout=5)

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as ac:
        yield ac

    app.dependency_overrides.clear()
    await feed_client.aclose()


# ---------------------------------------------------------------------------
# Convenience fixtures: hosts and properties
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture(loop_scope="session")
async def make_host(db_session: AsyncSession) -> Callable:
    async def _make(name: str = "Test Host") -> User:
        unique = uuid.uuid4().hex[:8]
        user = User(email=f"host-{unique}@test.com", name=name, is_active=True, role="host")
        db_session.add(user)
        await db_session.flush()
        return user

    return _make


@pytest_asyncio.fixture(loop_scope="session")
async def test_user(make_host) -> User:
    return await make_host()


@pytest.fixture
def auth_headers(test_user: User) -> dict[str, str]:
    """Return Authorization headers for the test user."""
    token = create_access_token(test_user.id)
    return {"Authorization": f"Bearer {token}"}


@pytest_asyncio.fixture(loop_scope="session")
async def test_property(db_session: AsyncSession, test_user: User) -> Property:
    prop = Property(owner_id=test_user.id, name="Seaside Loft", city="Lisbon")
    db_session.add(prop)
    await db_session.flush()
    return prop


@pytest_asyncio.fixture(loop_scope="session")
async def other_property(db_session: AsyncSession, test_user: User) -> Property:
    prop = Property(owner_id=test_user.id, name="Garden Studio", city="Lisbon")
    db_session.add(prop)
    await db_session.flush()
    return prop

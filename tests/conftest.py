"""Test fixtures — a throw-away database per test, real services on top.

Learn: Testing pattern for async SQLAlchemy + FastAPI:

1. Each test gets its own Database on a fresh SQLite file (aiosqlite),
   with the schema created up front. Set LONEPENGU_TEST_DATABASE_URL to
   run the same suite against PostgreSQL instead.
2. Token codec and session manager share a controllable clock, so
   expiry can be tested without sleeping.
3. The HTTP client talks to a fresh app through ASGITransport, with the
   SessionManager / Database dependencies overridden to the test ones.
"""

import os
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
import structlog
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select

from lonepengu.auth.dependencies import get_database, get_session_manager
from lonepengu.auth.tokens import TokenCodec
from lonepengu.config import Settings
from lonepengu.db.engine import Database
from lonepengu.db.models import Base
from lonepengu.main import create_app
from lonepengu.services.session_manager import SessionManager

TEST_SECRET = "test-secret-key-with-enough-length-0123"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture(autouse=True)
def _reset_structlog():
    """create_app() reconfigures structlog globally; undo it after each test."""
    yield
    structlog.reset_defaults()


@pytest.fixture()
def clock():
    return FakeClock(datetime.now(timezone.utc).replace(microsecond=0))


@pytest.fixture()
def db_url(tmp_path):
    return os.environ.get(
        "LONEPENGU_TEST_DATABASE_URL",
        f"sqlite+aiosqlite:///{tmp_path / 'lonepengu-test.db'}",
    )


@pytest.fixture()
def jwt_secret():
    return TEST_SECRET


@pytest.fixture()
def test_settings(db_url, jwt_secret):
    return Settings(
        database_url=db_url,
        jwt_secret=jwt_secret,
        environment="test",
        log_json=False,
        log_level="DEBUG",
    )


@pytest_asyncio.fixture()
async def database(db_url):
    """Fresh schema per test; tables dropped afterwards on shared servers."""
    db = Database(db_url, checkout_timeout=10.0)
    await db.create_schema()
    try:
        yield db
    finally:
        if not db_url.startswith("sqlite"):
            async with db.engine.begin() as conn:
                await conn.run_sync(Base.metadata.drop_all)
        await db.dispose()


@pytest.fixture()
def codec(jwt_secret, clock):
    return TokenCodec(jwt_secret, clock=clock)


@pytest.fixture()
def manager(database, codec, clock):
    return SessionManager(database, codec, clock=clock)


@pytest.fixture()
def app(test_settings, database, manager):
    """App with its storage dependencies pointed at the test DB."""
    application = create_app(test_settings)
    application.dependency_overrides[get_session_manager] = lambda: manager
    application.dependency_overrides[get_database] = lambda: database
    yield application
    application.dependency_overrides.clear()


@pytest_asyncio.fixture()
async def client(app):
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


async def _count_rows(database: Database, model, *criteria) -> int:
    query = select(func.count()).select_from(model)
    if criteria:
        query = query.where(*criteria)
    async with database.transaction() as tx:
        return await tx.scalar(query)


@pytest.fixture()
def count_rows():
    """COUNT(*) over a model, optionally filtered: ``await count_rows(db, Model, ...)``."""
    return _count_rows

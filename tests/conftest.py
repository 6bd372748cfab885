"""
Test configuration and fixtures for the waitlist API.

DATABASE_URL has to point somewhere before any app module is imported, since
the settings object and the default engine are built at import time. Each
test then gets its own SQLite file, a fresh app from create_app and a fake
email dispatcher that records what would have been sent.
"""

import os
import tempfile

test_db_path = tempfile.mktemp(suffix=".db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"
os.environ.pop("REDIS_URL", None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.features.waitlist.models.waitlist import WaitlistSignup
from app.main import create_app
from app.platform.config import Settings
from app.platform.db.base import Base
from app.platform.db.session import get_db
from app.platform.services.email import EmailResult

TEST_ENCRYPTION_KEY = "test-encryption-key"

# httpx's default user agent mentions python and would be flagged as a bot
BROWSER_HEADERS = {
    "user-agent": (
        "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0 Safari/537.36"
    ),
    "accept": "application/json",
    "accept-language": "en-US,en;q=0.9",
    "accept-encoding": "gzip, deflate",
}


class FakeDispatcher:
    """Stands in for EmailDispatcher and records every message."""

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.sent = []
        self.providers = []
        self.from_address = "noreply@unmask.test"

    def is_configured(self) -> bool:
        return True

    async def send(self, message):
        self.sent.append(message)
        if self.succeed:
            return EmailResult(success=True, provider="fake", message_id=f"msg-{len(self.sent)}")
        return EmailResult(success=False, provider="fallback", error="All providers failed")

    async def test_connection(self) -> dict:
        return {"configured": True, "providers": ["fake"]}


def make_settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": os.environ["DATABASE_URL"],
        "REDIS_URL": None,
        "ENVIRONMENT": "local",
        "PUBLIC_URL": "http://unmask.test",
        "ENCRYPTION_KEY": TEST_ENCRYPTION_KEY,
        "ADMIN_API_KEY": None,
        "ALLOW_DEBUG_BYPASS": False,
        "EMAIL_DEBUG": False,
    }
    values.update(overrides)
    return Settings(**values)


def client_for(app, **headers) -> AsyncClient:
    return AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://testserver",
        headers={**BROWSER_HEADERS, **headers},
    )


@pytest_asyncio.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'waitlist.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False)
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def dispatcher():
    return FakeDispatcher()


@pytest.fixture
def build_app(session_factory, dispatcher):
    """Factory for apps sharing this test's database and dispatcher."""

    def _build(**overrides):
        app = create_app(make_settings(**overrides))
        app.state.email_dispatcher = dispatcher

        async def override_get_db():
            async with session_factory() as session:
                yield session

        app.dependency_overrides[get_db] = override_get_db
        return app

    return _build


@pytest.fixture
def app(build_app):
    return build_app()


@pytest_asyncio.fixture
async def client(app):
    async with client_for(app) as ac:
        yield ac


@pytest.fixture
def fetch_signups(session_factory):
    async def _fetch():
        async with session_factory() as session:
            result = await session.execute(select(WaitlistSignup).order_by(WaitlistSignup.created_at))
            return result.scalars().all()

    return _fetch

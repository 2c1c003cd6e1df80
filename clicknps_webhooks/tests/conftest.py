import os
from datetime import datetime, timedelta
import httpx
import pytest
from dotenv import load_dotenv

load_dotenv()

# Fall back to a throwaway SQLite file when no database is configured
os.environ.setdefault("DATABASE_URL", "sqlite:///./clicknps_test.db")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

# Kept before any test patches httpx.AsyncClient for outbound calls
RealAsyncClient = httpx.AsyncClient


class InMemoryRedis:
    """The slice of the redis client API the settings cache uses."""

    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value):
        self.store[key] = value
        return True

    def delete(self, *keys):
        return sum(1 for key in keys if self.store.pop(key, None) is not None)

    def exists(self, key):
        return int(key in self.store)


class FrozenClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, value: datetime) -> datetime:
        self.now = value
        return self.now


@pytest.fixture(scope="session")
def db_engine():
    """Creates the DB engine and registers the tables."""
    from clicknps_webhooks.db.session import engine
    from clicknps_webhooks.models import business, webhook_delivery  # noqa: F401

    yield engine


@pytest.fixture(autouse=True)
def clean_db(db_engine):
    """Every test starts from empty tables."""
    from clicknps_webhooks.db.session import Base

    Base.metadata.drop_all(bind=db_engine)
    Base.metadata.create_all(bind=db_engine)
    yield


@pytest.fixture(autouse=True)
def redis_conn(monkeypatch):
    """Swap the settings cache's Redis connection for an in-memory one."""
    from clicknps_webhooks.cache import business_cache

    conn = InMemoryRedis()
    monkeypatch.setattr(business_cache, "redis_conn", conn)
    return conn


@pytest.fixture
async def async_db_session():
    from clicknps_webhooks.db.session import AsyncSessionLocal

    async with AsyncSessionLocal() as session:
        yield session


@pytest.fixture
def session_factory():
    from clicknps_webhooks.db.session import AsyncSessionLocal

    return AsyncSessionLocal


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 3, 1, 12, 0, 0))


@pytest.fixture
async def business(async_db_session):
    """A business with a configured webhook."""
    from clicknps_webhooks.models.business import Business

    biz = Business(
        name="Acme Coffee",
        webhook_url="https://hooks.acme.test/nps",
        webhook_secret="whk_test_secret",
    )
    async_db_session.add(biz)
    await async_db_session.commit()
    await async_db_session.refresh(biz)
    return biz


@pytest.fixture
async def business_without_webhook(async_db_session):
    from clicknps_webhooks.models.business import Business

    biz = Business(name="Quiet Bakery")
    async_db_session.add(biz)
    await async_db_session.commit()
    await async_db_session.refresh(biz)
    return biz


@pytest.fixture
def mock_http(mocker):
    """
    Patch httpx.AsyncClient and return the inner client mock.

    Set ``mock_http.post.return_value`` or ``side_effect`` per test.
    """
    from unittest.mock import AsyncMock, MagicMock

    mock_client = AsyncMock()
    mock_response = MagicMock()
    mock_response.status_code = 200
    mock_response.text = "ok"
    mock_client.post.return_value = mock_response

    mock_async_client = AsyncMock()
    mock_async_client.__aenter__.return_value = mock_client
    mock_async_client.__aexit__.return_value = None
    mocker.patch("httpx.AsyncClient", return_value=mock_async_client)
    return mock_client


@pytest.fixture
def make_response():
    """Build a fake httpx response with a status code and body."""
    from unittest.mock import MagicMock

    def _make(status_code, text="ok"):
        resp = MagicMock()
        resp.status_code = status_code
        resp.text = text
        return resp
    return _make


@pytest.fixture
async def client():
    """Provides an async HTTP client against the app."""
    from clicknps_webhooks.api.main import app

    transport = httpx.ASGITransport(app=app)
    async with RealAsyncClient(transport=transport, base_url="http://test") as client:
        yield client

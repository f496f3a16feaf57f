"""
Pytest configuration and fixtures.

Both stores run on in-memory SQLite (StaticPool, so every session and the
TestClient thread see the same database). The completion client is an
AsyncMock, DeepL is served by httpx.MockTransport, Redis by a dict.
"""

import os

# Must be set before any project module builds its engines
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["LEGACY_DATABASE_URL"] = "sqlite://"
os.environ.setdefault("DEEPL_AUTH_KEY", "test-key:fx")

from unittest.mock import AsyncMock, Mock

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from database.database import Base, LegacyBase
from database import legacy_models, models  # noqa: F401
from generation.continuation_cache import ContinuationCache
from generation.gpt_client import GptClient
from generation.usage_tracker import UsageMeter
from services import lifecycle
from services.legacy_promotion import SqlLegacyStore
from tests.factories import FakeRedis, deepl_client, make_category


def _memory_engine():
    return create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture
def session_factory():
    engine = _memory_engine()
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def legacy_session_factory():
    engine = _memory_engine()
    LegacyBase.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def legacy_store(legacy_session_factory):
    return SqlLegacyStore(legacy_session_factory)


@pytest.fixture
def fake_redis():
    return FakeRedis()


@pytest.fixture
def cache(fake_redis):
    return ContinuationCache(fake_redis, token_ceiling=1000, ttl_seconds=60)


@pytest.fixture
def usage():
    return UsageMeter()


@pytest.fixture
def gpt():
    client = Mock(spec=GptClient)
    client.complete = AsyncMock()
    return client


@pytest.fixture
def deepl():
    return deepl_client()


@pytest.fixture
def category(db):
    return make_category(db)


@pytest.fixture(autouse=True)
def allocation_locks(monkeypatch):
    # an asyncio.Lock binds to the first loop that waits on it; each test runs its own loop
    monkeypatch.setattr(lifecycle, "_allocation_locks", {})

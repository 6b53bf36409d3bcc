"""
Pytest configuration and shared fixtures.

The cache store is an in-memory SQLite database shared through StaticPool,
and Meta is replaced by FakeMetaClient, which answers from a handler and
records every call it receives.
"""
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel, create_engine

import adpulse.models.cache_models  # noqa: F401  (registers tables)
from adpulse.connectors.meta.rate_limiter import RequestScheduler

GRAPH_URL = "https://graph.test/v21.0"


class FakeMetaClient:
    """Stands in for MetaClient at the paginated_get seam."""

    graph_url = GRAPH_URL

    def __init__(self, handler=None):
        self.handler = handler or (lambda url, params: [])
        self.calls = []

    async def paginated_get(self, url, params=None, max_pages=20):
        params = dict(params or {})
        self.calls.append((url, params))
        result = self.handler(url, params)
        if isinstance(result, Exception):
            raise result
        return result

    async def close(self):
        pass

    def calls_to(self, fragment):
        return [c for c in self.calls if fragment in c[0]]


class FakeClock:
    """Settable UTC clock for staleness tests."""

    def __init__(self, start=None):
        self.now = start or datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest.fixture
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def scheduler():
    """No spacing, so service tests run instantly."""
    return RequestScheduler(max_concurrent=2, min_interval_ms=0)

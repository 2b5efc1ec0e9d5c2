"""Shared fixtures.

Provides an in-memory SQLite session, a fakeredis-backed rate limiter, a
deterministic clock for join timestamps, and an ASGI client with the app's
dependencies pointed at all of the above.
"""
import os

# Must be set before app modules build the engine and settings
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ADMIN_API_TOKEN", "test-admin-token")

from datetime import datetime, timedelta, timezone
from functools import partial

import fakeredis
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.core.database import Base, _sqlite_pragmas, get_db
from app.core.deps import get_admission_controller
from app.main import app
from app.services.admission_service import AdmissionController
from app.services.ledger_service import LedgerService
from app.services.project_service import ProjectService
from app.utils.rate_limiter import allow_for_credential


_TEST_ENGINE = _sqlite_pragmas(
    create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
)

_TestSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=_TEST_ENGINE)


class TickingClock:
    """Returns a strictly increasing UTC time, one step per call."""

    def __init__(self, start=None, step=timedelta(seconds=1)):
        self.now = start or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self):
        self.now = self.now + self.step
        return self.now


@pytest.fixture
def db_session():
    Base.metadata.create_all(bind=_TEST_ENGINE)
    session = _TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=_TEST_ENGINE)


@pytest.fixture
def fake_redis():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def rate_limit(fake_redis):
    return partial(allow_for_credential, client=fake_redis)


@pytest.fixture
def clock():
    return TickingClock()


@pytest.fixture
def ledger(db_session, clock):
    return LedgerService(db_session, clock=clock)


@pytest.fixture
def controller(db_session, rate_limit, ledger):
    return AdmissionController(db_session, rate_limit=rate_limit, ledger=ledger)


@pytest.fixture
def make_project(db_session):
    def _make(slug="beta", **settings):
        svc = ProjectService(db_session)
        project = svc.create_project(slug.title(), slug)
        if settings:
            project = svc.update_settings(project.id, **settings)
        return project
    return _make


@pytest.fixture
def project(make_project):
    return make_project("beta")


@pytest_asyncio.fixture
async def client(db_session, controller):
    def _get_db():
        yield db_session

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_admission_controller] = lambda: controller
    try:
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()

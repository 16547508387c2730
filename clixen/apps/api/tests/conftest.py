"""Pytest configuration and fixtures."""

import os
import sys
import tempfile
from pathlib import Path

# Inject sys.path for reliable pytest imports
sys.path.insert(0, str(Path(__file__).resolve().parents[1]))  # => .../apps/api

# Module-level engine in clixen_api.db.session is built at import time;
# point it at a throwaway SQLite file before anything imports the app.
_IMPORT_DB = Path(tempfile.gettempdir()) / "clixen_api_import.sqlite3"
os.environ.setdefault("DATABASE_URL", f"sqlite:///{_IMPORT_DB}")
os.environ.setdefault("CLIXEN_ENV", "test")
os.environ.setdefault("CLIXEN_JSON_LOGS", "false")
os.environ.setdefault("LINK_TOKEN_PEPPER", "test-link-pepper-0123456789abcdef")
os.environ.setdefault("ADMIN_TOKEN", "test-admin-token")
os.environ.setdefault("TELEGRAM_BOT_API_SECRET", "test-bot-secret")

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from clixen_api.auth.session_auth import get_now
from clixen_api.db.models import Base
from clixen_api.db.session import get_db
from clixen_api.main import app
from clixen_api.observability.metrics import get_metrics_sink
from tests.helpers import FakeClock, FakeIdentityProvider


@pytest.fixture(scope="function")
def engine(tmp_path):
    """File-backed SQLite so worker threads in concurrency tests share one database."""
    db_path = tmp_path / "clixen_test.sqlite3"
    test_engine = create_engine(
        f"sqlite:///{db_path}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    Base.metadata.create_all(test_engine)
    try:
        yield test_engine
    finally:
        Base.metadata.drop_all(test_engine)
        test_engine.dispose()


@pytest.fixture(scope="function")
def session_factory(engine) -> sessionmaker:
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture(scope="function")
def db_session(session_factory) -> Session:
    """Create a fresh database session for each test."""
    session = session_factory()
    try:
        yield session
        session.rollback()
    finally:
        session.close()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def identity_provider() -> FakeIdentityProvider:
    return FakeIdentityProvider()


@pytest.fixture
def test_client(session_factory, identity_provider, clock):
    """TestClient with per-request sessions, fake identity provider and fake clock."""

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_now] = lambda: clock.now
    app.state.identity_provider = identity_provider
    get_metrics_sink().clear()

    client = TestClient(app)
    yield client

    app.dependency_overrides.clear()
    app.state.identity_provider = None

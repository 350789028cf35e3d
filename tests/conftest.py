"""Pytest configuration and shared fixtures for Life Architect tests.

Provides isolated SQLite databases, a session factory matching the
repository implementations, tracker factories and Flask clients.
"""

from __future__ import annotations

import tempfile
from datetime import date
from pathlib import Path

import pytest
from sqlmodel import SQLModel, create_engine

from lifearchitect import create_app
from lifearchitect.infra.database import create_session_factory
from lifearchitect.models import Tracker, TrackerCompletion, User

# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture(scope="function")
def db_engine():
    """Create an isolated SQLite database file for each test.

    Yields:
        Engine: SQLModel engine with all tables created
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    engine = create_engine(f"sqlite:///{db_path}", echo=False)
    SQLModel.metadata.create_all(engine)

    yield engine

    engine.dispose()
    db_path.unlink(missing_ok=True)


@pytest.fixture(scope="function")
def session_factory(db_engine):
    """Session factory with the same commit/rollback semantics as the app."""

    return create_session_factory(db_engine)


# =============================================================================
# Test Data Factories
# =============================================================================


@pytest.fixture
def user_factory(session_factory):
    """Factory for creating users that own trackers."""

    def _create_user(username: str = "tester", timezone: str | None = "UTC") -> User:
        with session_factory() as session:
            user = User(username=username, password_hash="dummy-hash", timezone=timezone)
            session.add(user)
            session.commit()
            session.refresh(user)
            session.expunge(user)
            return user

    return _create_user


@pytest.fixture
def user(user_factory) -> User:
    """Default owner for scoping data."""

    return user_factory()


@pytest.fixture
def tracker_factory(session_factory, user):
    """Factory for creating persisted trackers.

    Returns:
        Callable: Function that creates and persists Tracker instances
    """

    def _create_tracker(
        title: str = "Test Tracker",
        frequency: str = "daily",
        start_date: date = date(2024, 1, 1),
        end_date: date | None = None,
        frequency_value: int = 1,
        target_days: list[int] | None = None,
        custom_dates: list[str] | None = None,
        is_active: bool = True,
        project_id: str | None = None,
        owner: User | None = None,
    ) -> Tracker:
        owner = owner or user
        with session_factory() as session:
            tracker = Tracker(
                user_id=owner.id,
                title=title,
                frequency=frequency,
                frequency_value=frequency_value,
                target_days=target_days or [],
                custom_dates=custom_dates or [],
                start_date=start_date,
                end_date=end_date,
                is_active=is_active,
                project_id=project_id,
            )
            session.add(tracker)
            session.commit()
            session.refresh(tracker)
            session.expunge(tracker)
            return tracker

    return _create_tracker


@pytest.fixture
def add_completions(session_factory):
    """Insert raw completion rows, bypassing the aggregate refresh."""

    def _add(tracker: Tracker, *days: date) -> None:
        with session_factory() as session:
            for day in days:
                session.add(TrackerCompletion(tracker_id=tracker.id, completion_date=day))
            session.commit()

    return _add


# =============================================================================
# Flask Fixtures
# =============================================================================


@pytest.fixture()
def app(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("LIFEARCHITECT_DATA_DIR", str(tmp_path))
    monkeypatch.setenv("LIFEARCHITECT_DATABASE_URL", f"sqlite:///{tmp_path / 'test.db'}")
    monkeypatch.delenv("LIFEARCHITECT_DEFAULT_TIMEZONE", raising=False)
    monkeypatch.delenv("LIFEARCHITECT_MAX_CALENDAR_DAYS", raising=False)
    monkeypatch.delenv("LIFEARCHITECT_LOG_LEVEL", raising=False)

    app = create_app("testing")
    yield app
    app.extensions["lifearchitect"]["engine"].dispose()


@pytest.fixture()
def client(app):
    return app.test_client()


def _register(client, username: str = "alice", password: str = "correct-horse", **extra):
    payload = {"username": username, "password": password, **extra}
    return client.post("/api/auth/register", json=payload)


@pytest.fixture()
def register_user():
    """Return a helper that registers (and signs in) a user on a client."""

    return _register


@pytest.fixture()
def auth_client(client):
    """Client signed in as ``alice``."""

    response = _register(client)
    assert response.status_code == 201
    return client


@pytest.fixture()
def other_client(app):
    """Second client signed in as ``bob``."""

    other = app.test_client()
    response = _register(other, username="bob")
    assert response.status_code == 201
    return other

"""Database wiring for the Flask application."""

from __future__ import annotations

from flask import Flask, current_app

from .config import BaseConfig
from .domain.repositories import TrackerRepository
from .infra.database import SessionFactory, bootstrap_database
from .infra.repositories import SQLModelTrackerRepository

_EXTENSION_KEY = "lifearchitect"


def init_db(app: Flask) -> None:
    """Create the engine and schema, and attach them to the application."""

    config: BaseConfig = app.config["LIFEARCHITECT_CONFIG"]
    engine, session_factory = bootstrap_database(config)
    state = app.extensions.setdefault(_EXTENSION_KEY, {})
    state["engine"] = engine
    state["session_factory"] = session_factory


def _state() -> dict:
    state = current_app.extensions.get(_EXTENSION_KEY)
    if not state:  # pragma: no cover - exercised only on misconfigured apps
        raise RuntimeError("Database engine not initialized")
    return state


def get_session_factory() -> SessionFactory:
    """Return the session factory bound to the current application."""

    return _state()["session_factory"]


def get_tracker_repository() -> TrackerRepository:
    """Return a tracker repository bound to the current application."""

    return SQLModelTrackerRepository(get_session_factory())

"""Engine construction and transactional sessions for the tracker store."""

from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Callable, ContextManager, Iterator, Mapping, Tuple

from sqlalchemy import event
from sqlalchemy.engine import Engine
from sqlmodel import Session, SQLModel, create_engine

from ..config import BaseConfig
from ..logging_config import get_logger

SessionFactory = Callable[[], ContextManager[Session]]

logger = get_logger(__name__)


def _install_sqlite_pragmas(engine: Engine, pragmas: Mapping[str, str]) -> None:
    """Run ``PRAGMA`` statements on every new SQLite connection."""

    @event.listens_for(engine, "connect")
    def _apply(dbapi_connection: Any, _record: Any) -> None:
        cursor = dbapi_connection.cursor()
        try:
            for name, value in pragmas.items():
                cursor.execute(f"PRAGMA {name}={value}")
        finally:
            cursor.close()


def create_db_engine(config: BaseConfig) -> Engine:
    """Build the engine described by ``DATABASE_URL``.

    SQLite connections get ``config.SQLITE_PRAGMAS`` so completion rows
    cannot outlive their tracker.
    """
    engine = create_engine(config.DATABASE_URL, **config.sqlalchemy_engine_options())
    if engine.dialect.name == "sqlite" and config.SQLITE_PRAGMAS:
        _install_sqlite_pragmas(engine, config.SQLITE_PRAGMAS)
    return engine


def create_tables(engine: Engine) -> None:
    """Create the user, tracker and completion tables when missing."""
    from .. import models  # noqa: F401  registers the tables on SQLModel.metadata

    SQLModel.metadata.create_all(engine)


def create_session_factory(engine: Engine) -> SessionFactory:
    """Return a factory of sessions that commit on success and roll back on error.

    Objects stay loaded after commit so repositories can hand detached rows
    back to the routes.
    """

    @contextmanager
    def unit_of_work() -> Iterator[Session]:
        session = Session(engine, expire_on_commit=False)
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    return unit_of_work


def bootstrap_database(config: BaseConfig) -> Tuple[Engine, SessionFactory]:
    """Create the engine and schema for ``config``; returns (engine, session_factory)."""

    engine = create_db_engine(config)
    create_tables(engine)
    logger.info(
        "Database ready",
        extra={"dialect": engine.dialect.name, "database": engine.url.render_as_string(hide_password=True)},
    )
    return engine, create_session_factory(engine)

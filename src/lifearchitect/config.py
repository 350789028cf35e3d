"""Application configuration objects and helpers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    """Interpret environment variable values as booleans."""

    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    """Read an integer environment variable, rejecting garbage loudly."""

    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


class BaseConfig:
    """Base configuration shared across environments."""

    APP_NAME = "Life Architect"
    DB_FILENAME = "lifearchitect.db"
    JSON_SORT_KEYS = False
    LOG_TO_FILE = True
    LOG_FILENAME = "lifearchitect.log"
    SQLITE_PRAGMAS = {"journal_mode": "wal", "foreign_keys": "on"}

    def __init__(self) -> None:
        self.SECRET_KEY = os.getenv("LIFEARCHITECT_SECRET_KEY", "replace-me")
        self.DATA_DIR = self._resolve_data_dir()
        self.DEV_MODE = _env_bool("LIFEARCHITECT_DEV_MODE", default=True)
        self.DATABASE_URL = os.getenv("LIFEARCHITECT_DATABASE_URL", self._build_sqlite_url())
        self.DEFAULT_TIMEZONE = os.getenv("LIFEARCHITECT_DEFAULT_TIMEZONE", "UTC")
        self.MAX_CALENDAR_DAYS = _env_int("LIFEARCHITECT_MAX_CALENDAR_DAYS", 366)
        self.LOG_LEVEL = os.getenv("LIFEARCHITECT_LOG_LEVEL", "INFO").strip().upper()
        if not self.DEV_MODE and self.SECRET_KEY == "replace-me":
            raise ValueError("LIFEARCHITECT_SECRET_KEY must be set in non-dev mode.")
        if self.MAX_CALENDAR_DAYS < 1:
            raise ValueError("LIFEARCHITECT_MAX_CALENDAR_DAYS must be positive.")
        if self.LOG_LEVEL not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError(f"LIFEARCHITECT_LOG_LEVEL must be a logging level name, got {self.LOG_LEVEL!r}")

    def _resolve_data_dir(self) -> Path:
        """Return the directory where the SQLite file and logs live."""

        data_root = os.getenv("LIFEARCHITECT_DATA_DIR", "instance")
        path = Path(data_root).expanduser().resolve()
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _build_sqlite_url(self) -> str:
        """Construct the default SQLite URL inside the data directory."""

        db_path = self.DATA_DIR / self.DB_FILENAME
        return f"sqlite:///{db_path}"

    def sqlalchemy_engine_options(self) -> dict[str, Any]:
        """Expose engine kwargs for SQLModel to consume."""

        engine_options: dict[str, Any] = {}
        if self.DATABASE_URL.startswith("sqlite"):
            # Flask serves requests from several threads.
            engine_options["connect_args"] = {"check_same_thread": False}
        return engine_options


class DevConfig(BaseConfig):
    """Development configuration using local SQLite."""

    DEBUG = True
    TESTING = False


class TestConfig(BaseConfig):
    """Configuration used by the test-suite."""

    TESTING = True
    LOG_TO_FILE = False

    def __init__(self) -> None:
        super().__init__()
        if self.SECRET_KEY == "replace-me":
            self.SECRET_KEY = "test-secret"

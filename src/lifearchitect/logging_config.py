"""Logging for the Life Architect app: readable console lines, JSON lines on disk.

Everything logs under the ``lifearchitect`` logger tree. Keys passed with
``extra={...}`` end up under ``"extra"`` in the JSON file; they must not
collide with ``LogRecord`` attributes such as ``created`` or ``name``.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

from .config import BaseConfig

ROOT_LOGGER = "lifearchitect"

# Attributes every LogRecord carries, plus the two added by Formatter.format.
_RECORD_ATTRS = frozenset(vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None))) | {
    "message",
    "asctime",
}

_DEV_CONSOLE_FORMAT = "[%(asctime)s] %(levelname)-8s [%(name)s.%(funcName)s:%(lineno)d] %(message)s"
_CONSOLE_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Return the attributes attached to ``record`` through ``extra``."""
    return {key: value for key, value in vars(record).items() if key not in _RECORD_ATTRS}


class JSONFormatter(logging.Formatter):
    """One JSON object per record, timestamped from the record itself."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, _ = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": self.formatException(record.exc_info),
            }

        fields = extra_fields(record)
        if fields:
            entry["extra"] = fields

        return json.dumps(entry, default=str)


def _console_handler(config: BaseConfig) -> logging.Handler:
    handler = logging.StreamHandler()
    if config.DEV_MODE:
        handler.setLevel(config.LOG_LEVEL)
        handler.setFormatter(logging.Formatter(_DEV_CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    else:
        # Outside dev mode the console only carries problems.
        level = max(logging.getLevelName(config.LOG_LEVEL), logging.WARNING)
        handler.setLevel(level)
        handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    return handler


def _file_handler(log_file: Path) -> logging.Handler:
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        filename=log_file,
        maxBytes=10 * 1024 * 1024,
        backupCount=5,
        encoding="utf-8",
    )
    handler.setFormatter(JSONFormatter())
    return handler


def log_file_path(config: BaseConfig) -> Path:
    return Path(config.DATA_DIR) / "logs" / config.LOG_FILENAME


def setup_logging(config: BaseConfig) -> logging.Logger:
    """Attach fresh handlers to the ``lifearchitect`` logger and return it.

    The level comes from ``config.LOG_LEVEL``. A rotating JSON file under
    ``DATA_DIR/logs`` is added when ``config.LOG_TO_FILE`` is set.
    """
    logger = logging.getLogger(ROOT_LOGGER)
    logger.setLevel(config.LOG_LEVEL)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.addHandler(_console_handler(config))

    log_file: Optional[Path] = None
    if config.LOG_TO_FILE:
        log_file = log_file_path(config)
        logger.addHandler(_file_handler(log_file))

    logger.info(
        "Logging initialized",
        extra={
            "dev_mode": config.DEV_MODE,
            "log_level": config.LOG_LEVEL,
            "log_file": str(log_file) if log_file else None,
            "data_dir": str(config.DATA_DIR),
        },
    )
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return ``name`` as a child of the ``lifearchitect`` logger."""
    if name == ROOT_LOGGER or name.startswith(ROOT_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER}.{name}")

"""JSON error responses for the API."""

from __future__ import annotations

from typing import Any

from flask import Flask, jsonify
from pydantic import ValidationError
from werkzeug.exceptions import HTTPException

from .logging_config import get_logger
from .services.scheduling import InvalidConfig, OutOfRange

logger = get_logger(__name__)


def validation_payload(exc: ValidationError) -> dict[str, Any]:
    """Flatten a pydantic error into ``{field, message}`` entries."""

    errors: list[dict[str, str]] = []
    for error in exc.errors(include_url=False):
        loc = error.get("loc", ())
        field = ".".join(str(part) for part in loc) if loc else "__root__"
        errors.append({"field": field, "message": error.get("msg", "Invalid value")})
    return {"error": "validation_error", "message": "Invalid data", "errors": errors}


def _error(code: str, message: str, status: int):
    return jsonify({"error": code, "message": message}), status


def register_error_handlers(app: Flask) -> None:
    """Translate domain and HTTP errors into JSON responses."""

    @app.errorhandler(ValidationError)
    def _handle_validation(exc: ValidationError):
        return jsonify(validation_payload(exc)), 400

    @app.errorhandler(InvalidConfig)
    def _handle_invalid_config(exc: InvalidConfig):
        payload = {
            "error": "validation_error",
            "message": "Invalid data",
            "errors": [{"field": "__root__", "message": str(exc)}],
        }
        return jsonify(payload), 400

    @app.errorhandler(OutOfRange)
    def _handle_out_of_range(exc: OutOfRange):
        return _error("out_of_range", str(exc), 400)

    @app.errorhandler(HTTPException)
    def _handle_http(exc: HTTPException):
        code = (exc.name or "error").lower().replace(" ", "_")
        return _error(code, exc.description or exc.name, exc.code or 500)

    @app.errorhandler(Exception)
    def _handle_unexpected(exc: Exception):
        # Storage and driver messages stay in the log, never in the response.
        logger.exception("Unhandled error while serving request")
        return _error("internal_error", "Internal server error", 500)

"""Authentication routes: register, login, logout and profile."""

from __future__ import annotations

from flask import jsonify, request
from werkzeug.exceptions import Conflict, Unauthorized

from ...extensions import get_session_factory
from ...logging_config import get_logger
from ...models.user import User
from ...services import auth as auth_service
from . import bp
from .forms import LoginForm, ProfileForm, RegisterForm
from .session import login_user, logout_user, require_user

logger = get_logger(__name__)


def _serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "timezone": user.timezone,
        "created_at": user.created_at.isoformat() if user.created_at else None,
    }


@bp.post("/register")
def register():
    """Create an account and sign it in."""

    form = RegisterForm.model_validate(request.get_json(silent=True) or {})
    try:
        user = auth_service.create_user(
            username=form.username,
            password=form.password,
            timezone_name=form.timezone,
            session_factory=get_session_factory(),
        )
    except ValueError as exc:
        raise Conflict(str(exc)) from exc

    login_user(user)
    logger.info("User registered", extra={"user_id": user.id})
    return jsonify({"success": True, "user": _serialize_user(user)}), 201


@bp.post("/login")
def login():
    """Exchange credentials for a session cookie."""

    form = LoginForm.model_validate(request.get_json(silent=True) or {})
    user = auth_service.authenticate(
        username=form.username,
        password=form.password,
        session_factory=get_session_factory(),
    )
    if user is None:
        logger.info("Login rejected", extra={"username": form.username})
        raise Unauthorized("Invalid username or password")

    login_user(user)
    return jsonify({"success": True, "user": _serialize_user(user)})


@bp.post("/logout")
def logout():
    logout_user()
    return jsonify({"success": True})


@bp.get("/me")
def me():
    return jsonify({"user": _serialize_user(require_user())})


@bp.patch("/me")
def update_me():
    """Update the profile timezone used as the trackers' fallback."""

    user = require_user()
    form = ProfileForm.model_validate(request.get_json(silent=True) or {})
    user = auth_service.set_timezone(
        user_id=user.id,
        timezone_name=form.timezone,
        session_factory=get_session_factory(),
    )
    return jsonify({"success": True, "user": _serialize_user(user)})

"""Session-cookie helpers shared by the API blueprints."""

from __future__ import annotations

from flask import session
from werkzeug.exceptions import Unauthorized

from ...extensions import get_session_factory
from ...models.user import User
from ...services.auth import get_user

SESSION_USER_KEY = "user_id"


def login_user(user: User) -> None:
    session.clear()
    session[SESSION_USER_KEY] = user.id
    session.permanent = True


def logout_user() -> None:
    session.clear()


def require_user() -> User:
    """Return the signed-in user or raise 401."""

    user_id = session.get(SESSION_USER_KEY)
    if user_id is None:
        raise Unauthorized("Authentication required")
    user = get_user(user_id, get_session_factory())
    if user is None:
        session.clear()
        raise Unauthorized("Authentication required")
    return user

"""Flask CLI commands for Life Architect."""

from __future__ import annotations

from datetime import date
from typing import Optional

import click
from flask import current_app

from .extensions import get_session_factory, get_tracker_repository
from .services import auth as auth_service
from .services.trackers import local_today, tracker_timezone


def _parse_as_of(ctx, param, value: Optional[str]) -> Optional[date]:
    if value is None:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise click.BadParameter("expected YYYY-MM-DD") from exc


def init_app(app) -> None:
    """Register CLI commands on the Flask app."""

    @app.cli.command("lifearchitect-refresh-stats")
    @click.option("--as-of", "as_of", callback=_parse_as_of, help="Reference date (YYYY-MM-DD).")
    def refresh_stats(as_of: Optional[date]) -> None:
        """Recompute cached streaks and totals for every tracker."""

        repo = get_tracker_repository()
        session_factory = get_session_factory()
        default_tz = current_app.config["DEFAULT_TIMEZONE"]
        profile_timezones: dict[int, Optional[str]] = {}

        refreshed = 0
        for tracker in repo.list_all():
            if tracker.user_id not in profile_timezones:
                owner = auth_service.get_user(tracker.user_id, session_factory)
                profile_timezones[tracker.user_id] = owner.timezone if owner else None
            reference = as_of or local_today(
                tracker_timezone(tracker, profile_timezones[tracker.user_id], default_tz)
            )
            repo.refresh_aggregates(tracker.id, as_of=reference)
            refreshed += 1
        click.echo(f"Refreshed {refreshed} tracker(s).")

    @app.cli.command("lifearchitect-create-user")
    @click.argument("username")
    @click.password_option()
    @click.option("--timezone", "timezone_name", default=None, help="IANA timezone for the profile.")
    def create_user(username: str, password: str, timezone_name: Optional[str]) -> None:
        """Create a user account."""

        try:
            user = auth_service.create_user(
                username=username,
                password=password,
                timezone_name=timezone_name,
                session_factory=get_session_factory(),
            )
        except ValueError as exc:
            raise click.ClickException(str(exc)) from exc
        click.echo(f"Created user {user.username} (id={user.id}).")

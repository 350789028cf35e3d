"""Tracker and completion routes."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, Optional

from flask import current_app, jsonify, request
from werkzeug.exceptions import BadRequest, Forbidden, NotFound

from ...domain.repositories import TrackerRepository
from ...extensions import get_tracker_repository
from ...logging_config import get_logger
from ...models.tracker import Tracker, TrackerCompletion
from ...models.user import User
from ...services.scheduling import Frequency, TrackerCalendarDay, TrackerStats, schedule_from_record
from ...services.trackers import calendar_for, is_due, local_today, stats_for, tracker_timezone
from ..auth import require_user
from . import bp
from .forms import CompletionForm, TrackerForm, TrackerUpdateForm

logger = get_logger(__name__)

# Fields cleared when the frequency changes and the payload does not resend them.
_RULE_DEFAULTS: dict[str, Any] = {"frequency_value": 1, "target_days": [], "custom_dates": []}
_RULE_FIELD_OWNERS = {
    "frequency_value": Frequency.EVERY_X_DAYS,
    "target_days": Frequency.WEEKLY,
    "custom_dates": Frequency.CUSTOM,
}


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(raw: Optional[str], name: str) -> Optional[date]:
    if raw is None or raw == "":
        return None
    try:
        return date.fromisoformat(raw)
    except ValueError as exc:
        raise BadRequest(f"{name} must be a date formatted YYYY-MM-DD") from exc


def _today_for(tracker: Tracker, user: User) -> date:
    tz_name = tracker_timezone(tracker, user.timezone, current_app.config["DEFAULT_TIMEZONE"])
    return local_today(tz_name)


def _owned_tracker(repo: TrackerRepository, tracker_id: int, user: User) -> Tracker:
    tracker = repo.get_by_id(tracker_id)
    if tracker is None:
        raise NotFound("Tracker not found")
    if tracker.user_id != user.id:
        logger.warning(
            "Tracker access denied",
            extra={"tracker_id": tracker_id, "user_id": user.id},
        )
        raise Forbidden("Tracker belongs to another user")
    return tracker


def _serialize_completion(completion: TrackerCompletion) -> dict[str, Any]:
    return {
        "id": completion.id,
        "tracker_id": completion.tracker_id,
        "completion_date": completion.completion_date.isoformat(),
        "completed_at": completion.completed_at.isoformat(),
        "notes": completion.notes,
        "created_at": completion.created_at.isoformat(),
    }


def _serialize_tracker(
    tracker: Tracker,
    stats: Optional[TrackerStats] = None,
    *,
    completed_today: Optional[bool] = None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "id": tracker.id,
        "user_id": tracker.user_id,
        "project_id": tracker.project_id,
        "title": tracker.title,
        "description": tracker.description,
        "category": tracker.category,
        "icon": tracker.icon,
        "color": tracker.color,
        "frequency": tracker.frequency,
        "frequency_value": tracker.frequency_value,
        "target_days": list(tracker.target_days or []),
        "custom_dates": list(tracker.custom_dates or []),
        "start_date": tracker.start_date.isoformat(),
        "end_date": _iso(tracker.end_date),
        "timezone": tracker.timezone,
        "total_completions": tracker.total_completions,
        "current_streak": tracker.current_streak,
        "best_streak": tracker.best_streak,
        "created_at": tracker.created_at.isoformat(),
        "updated_at": tracker.updated_at.isoformat(),
        "is_active": tracker.is_active,
    }
    if stats is not None:
        # Fresh values win over a cache that may have aged since the last write.
        payload.update(
            total_completions=stats.total_completions,
            current_streak=stats.current_streak,
            best_streak=stats.best_streak,
        )
        payload["stats"] = stats.to_dict()
    if completed_today is not None:
        payload["completed_today"] = completed_today
    return payload


def _serialize_day(day: TrackerCalendarDay) -> dict[str, Any]:
    return {
        "date": day.date.isoformat(),
        "is_scheduled": day.is_scheduled,
        "completed": day.completed,
        "completion": _serialize_completion(day.completion) if day.completion is not None else None,
    }


def _trackers_with_stats(
    repo: TrackerRepository, trackers: Iterable[Tracker], user: User
) -> tuple[list[dict[str, Any]], list[int]]:
    trackers = list(trackers)
    completions = repo.completions_by_tracker([t.id for t in trackers if t.id is not None])
    rows: list[dict[str, Any]] = []
    completed_today: list[int] = []
    for tracker in trackers:
        today = _today_for(tracker, user)
        history = completions.get(tracker.id, [])
        done_today = any(c.completion_date == today for c in history)
        if done_today:
            completed_today.append(tracker.id)
        stats = stats_for(tracker, history, today)
        rows.append(_serialize_tracker(tracker, stats, completed_today=done_today))
    return rows, completed_today


def _validate_config(tracker: Tracker) -> None:
    # Raises InvalidConfig, rendered as a 400 by the app error handlers.
    schedule_from_record(tracker)


# ---------------------------------------------------------------------------
# Trackers
# ---------------------------------------------------------------------------


@bp.get("/trackers")
def list_trackers():
    """List the caller's trackers with statistics as of their local today."""

    user = require_user()
    repo = get_tracker_repository()
    include_inactive = request.args.get("include_inactive", "true").lower() != "false"
    trackers = repo.list_for_user(user_id=user.id, include_inactive=include_inactive)
    rows, completed_today = _trackers_with_stats(repo, trackers, user)
    return jsonify({"trackers": rows, "completedToday": completed_today})


@bp.get("/projects/<project_id>/trackers")
def list_project_trackers(project_id: str):
    """List the caller's trackers attached to one project."""

    user = require_user()
    repo = get_tracker_repository()
    trackers = repo.list_for_user(user_id=user.id, project_id=project_id)
    rows, _ = _trackers_with_stats(repo, trackers, user)
    return jsonify({"trackers": rows})


@bp.post("/trackers")
@bp.post("/trackers/create")
def create_tracker():
    """Create a tracker after validating its schedule configuration."""

    user = require_user()
    form = TrackerForm.model_validate(request.get_json(silent=True) or {})
    tracker = Tracker(
        user_id=user.id,
        project_id=form.project_id,
        title=form.title,
        description=form.description,
        category=form.category,
        icon=form.icon,
        color=form.color,
        frequency=form.frequency.value,
        frequency_value=form.frequency_value,
        target_days=sorted(set(form.target_days)),
        custom_dates=sorted(day.isoformat() for day in set(form.custom_dates)),
        start_date=form.start_date or date.min,
        end_date=form.end_date,
        timezone=form.timezone,
        is_active=form.is_active,
    )
    if form.start_date is None:
        tracker.start_date = _today_for(tracker, user)
    _validate_config(tracker)

    tracker = get_tracker_repository().create(tracker, user_id=user.id)
    logger.info(
        "Tracker created",
        extra={"tracker_id": tracker.id, "user_id": user.id, "frequency": tracker.frequency},
    )
    return jsonify({"success": True, "tracker": _serialize_tracker(tracker)}), 201


@bp.get("/trackers/due")
def due_trackers():
    """List active trackers scheduled on a date (default: each tracker's today)."""

    user = require_user()
    requested = _parse_date(request.args.get("date"), "date")
    repo = get_tracker_repository()
    trackers = repo.list_for_user(user_id=user.id, include_inactive=False)
    completions = repo.completions_by_tracker([t.id for t in trackers if t.id is not None])

    due: list[dict[str, Any]] = []
    for tracker in trackers:
        day = requested or _today_for(tracker, user)
        if not is_due(tracker, day):
            continue
        done = any(c.completion_date == day for c in completions.get(tracker.id, []))
        row = _serialize_tracker(tracker, completed_today=done)
        row["due_date"] = day.isoformat()
        due.append(row)
    return jsonify({"trackers": due})


@bp.get("/trackers/<int:tracker_id>")
def get_tracker(tracker_id: int):
    user = require_user()
    repo = get_tracker_repository()
    tracker = _owned_tracker(repo, tracker_id, user)
    today = _today_for(tracker, user)
    completions = repo.list_completions(tracker_id)
    stats = stats_for(tracker, completions, today)
    done_today = any(c.completion_date == today for c in completions)
    return jsonify({"tracker": _serialize_tracker(tracker, stats, completed_today=done_today)})


@bp.patch("/trackers/<int:tracker_id>")
def update_tracker(tracker_id: int):
    """Apply a partial update, re-validate the schedule and refresh aggregates."""

    user = require_user()
    repo = get_tracker_repository()
    tracker = _owned_tracker(repo, tracker_id, user)
    form = TrackerUpdateForm.model_validate(request.get_json(silent=True) or {})
    changes = form.model_dump(exclude_unset=True)

    new_frequency = changes.get("frequency")
    if new_frequency is not None:
        for field_name, owner in _RULE_FIELD_OWNERS.items():
            if new_frequency is not owner and field_name not in changes:
                changes[field_name] = _RULE_DEFAULTS[field_name]
        changes["frequency"] = new_frequency.value
    if "target_days" in changes:
        changes["target_days"] = sorted(set(changes["target_days"] or []))
    if "custom_dates" in changes:
        changes["custom_dates"] = sorted(day.isoformat() for day in set(changes["custom_dates"] or []))
    if changes.get("frequency_value", 0) is None:
        changes["frequency_value"] = 1

    for field_name, value in changes.items():
        setattr(tracker, field_name, value)
    _validate_config(tracker)

    tracker = repo.update(tracker, user_id=user.id, as_of=_today_for(tracker, user))
    logger.info(
        "Tracker updated",
        extra={"tracker_id": tracker_id, "user_id": user.id, "fields": sorted(changes)},
    )
    return jsonify({"success": True, "tracker": _serialize_tracker(tracker)})


@bp.delete("/trackers/<int:tracker_id>")
def delete_tracker(tracker_id: int):
    user = require_user()
    repo = get_tracker_repository()
    _owned_tracker(repo, tracker_id, user)
    repo.delete(tracker_id, user_id=user.id)
    logger.info("Tracker deleted", extra={"tracker_id": tracker_id, "user_id": user.id})
    return jsonify({"success": True, "message": "Tracker deleted"})


@bp.get("/trackers/<int:tracker_id>/stats")
def tracker_stats(tracker_id: int):
    """Statistics as of ``as_of`` (default: the tracker's local today)."""

    user = require_user()
    repo = get_tracker_repository()
    tracker = _owned_tracker(repo, tracker_id, user)
    as_of = _parse_date(request.args.get("as_of"), "as_of") or _today_for(tracker, user)
    stats = stats_for(tracker, repo.list_completions(tracker_id), as_of)
    return jsonify({"stats": stats.to_dict()})


@bp.get("/trackers/<int:tracker_id>/calendar")
def tracker_calendar(tracker_id: int):
    """Calendar cells for ``[start, end]``; defaults to the current month."""

    user = require_user()
    repo = get_tracker_repository()
    tracker = _owned_tracker(repo, tracker_id, user)
    today = _today_for(tracker, user)
    start = _parse_date(request.args.get("start"), "start") or today.replace(day=1)
    end = _parse_date(request.args.get("end"), "end")
    if end is None:
        next_month = (start.replace(day=28) + timedelta(days=4)).replace(day=1)
        end = next_month - timedelta(days=1)
    if end < start:
        raise BadRequest("end must not be before start")
    max_days = current_app.config["MAX_CALENDAR_DAYS"]
    if (end - start).days + 1 > max_days:
        raise BadRequest(f"Calendar range cannot exceed {max_days} days")

    completions = repo.list_completions(tracker_id, start, end)
    days = calendar_for(tracker, completions, start, end, today=today)
    return jsonify(
        {
            "tracker_id": tracker_id,
            "start": start.isoformat(),
            "end": end.isoformat(),
            "days": [_serialize_day(day) for day in days],
        }
    )


# ---------------------------------------------------------------------------
# Completions
# ---------------------------------------------------------------------------


@bp.post("/trackers/complete")
def complete_tracker():
    """Record a completion, then recompute and persist the cached aggregates."""

    user = require_user()
    form = CompletionForm.model_validate(request.get_json(silent=True) or {})
    repo = get_tracker_repository()
    tracker = _owned_tracker(repo, form.tracker_id, user)

    today = _today_for(tracker, user)
    if form.completion_date > today:
        raise BadRequest("completion_date cannot be in the future")

    result = repo.record_completion(
        TrackerCompletion(
            tracker_id=tracker.id,
            completion_date=form.completion_date,
            completed_at=datetime.now(timezone.utc),
            notes=form.notes,
        ),
        as_of=today,
    )
    logger.info(
        "Tracker completion recorded",
        extra={
            "tracker_id": tracker.id,
            "user_id": user.id,
            "completion_date": form.completion_date.isoformat(),
            "new_row": result.created,
        },
    )
    body = {
        "success": True,
        "created": result.created,
        "completion": _serialize_completion(result.completion),
        "stats": result.stats.to_dict(),
    }
    return jsonify(body), 201 if result.created else 200


@bp.delete("/trackers/<int:tracker_id>/completions/<completion_date>")
def undo_completion(tracker_id: int, completion_date: str):
    """Remove the completion for one day and refresh the aggregates."""

    user = require_user()
    day = _parse_date(completion_date, "completion_date")
    repo = get_tracker_repository()
    tracker = _owned_tracker(repo, tracker_id, user)
    stats = repo.remove_completion(tracker_id, day, as_of=_today_for(tracker, user))
    if stats is None:
        raise NotFound("No completion recorded for that date")
    logger.info(
        "Tracker completion removed",
        extra={"tracker_id": tracker_id, "user_id": user.id, "completion_date": day.isoformat()},
    )
    return jsonify({"success": True, "stats": stats.to_dict()})


@bp.get("/trackers/completions")
def list_completions():
    """List the caller's completions recorded for one date."""

    user = require_user()
    day = _parse_date(request.args.get("date"), "date")
    if day is None:
        raise BadRequest("date is required")
    completions = get_tracker_repository().completions_on(day, user_id=user.id)
    return jsonify({"completions": [_serialize_completion(c) for c in completions]})

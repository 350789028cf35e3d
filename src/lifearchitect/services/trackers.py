"""Tracker service helpers bridging stored rows and the scheduling engine."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Iterable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from ..models.tracker import Tracker
from .scheduling import (
    InvalidConfig,
    TrackerCalendarDay,
    TrackerSchedule,
    TrackerStats,
    calendar_days,
    compute_stats,
    is_scheduled,
    schedule_from_record,
)


def resolve_timezone(name: str) -> ZoneInfo:
    """Return the IANA zone for ``name``; raises ``InvalidConfig`` if unknown."""

    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidConfig(f"Unknown timezone: {name!r}") from exc


def tracker_timezone(tracker: Tracker, profile_timezone: Optional[str], default: str) -> str:
    """Pick the tracker's timezone, falling back to the profile, then the default."""

    return tracker.timezone or profile_timezone or default


def local_today(timezone_name: str, *, now: Optional[datetime] = None) -> date:
    """Return the calendar date in ``timezone_name`` at ``now`` (UTC clock by default)."""

    instant = now or datetime.now(timezone.utc)
    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(resolve_timezone(timezone_name)).date()


def schedule_for(tracker: Tracker) -> TrackerSchedule:
    """Build the live schedule for a stored tracker."""

    return schedule_from_record(tracker)


def stats_for(tracker: Tracker, completions: Iterable[Any], as_of: date) -> TrackerStats:
    """Compute statistics for a tracker; inactive trackers keep their history."""

    return compute_stats(tracker.id, schedule_for(tracker), completions, as_of)


def calendar_for(
    tracker: Tracker, completions: Iterable[Any], start: date, end: date, *, today: date
) -> list[TrackerCalendarDay]:
    """Calendar cells for a tracker; a paused tracker shows only its past as scheduled."""

    return calendar_days(schedule_for(tracker), completions, start, end, as_of=today)


def is_due(tracker: Tracker, day: date) -> bool:
    """Return True when an active tracker is scheduled on ``day``."""

    return is_scheduled(schedule_for(tracker), day)


def apply_stats(tracker: Tracker, stats: TrackerStats) -> bool:
    """Copy cached aggregates onto the tracker row; return True when they changed."""

    changed = (
        tracker.total_completions != stats.total_completions
        or tracker.current_streak != stats.current_streak
        or tracker.best_streak != stats.best_streak
    )
    tracker.total_completions = stats.total_completions
    tracker.current_streak = stats.current_streak
    tracker.best_streak = stats.best_streak
    return changed


__all__ = [
    "apply_stats",
    "calendar_for",
    "is_due",
    "local_today",
    "resolve_timezone",
    "schedule_for",
    "stats_for",
    "tracker_timezone",
]

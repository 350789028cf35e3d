"""Tracker scheduling and streak statistics.

Everything in this module is a pure function of its arguments. Nothing reads
the clock or touches storage: callers pass the reference date explicitly,
already resolved in the tracker's timezone, together with a snapshot of the
tracker's completion dates.

Weekday indices follow the wire contract: 0 is Sunday and 6 is Saturday.
"""

from __future__ import annotations

import calendar
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any, Callable, ClassVar, Iterable, Iterator, Mapping, Optional, Union

MAX_FREQUENCY_VALUE = 365
DEFAULT_SEARCH_HORIZON_DAYS = 366
# Longest possible gap between two consecutive monthly occurrences.
_MONTHLY_MAX_GAP_DAYS = 62
_ONE_DAY = timedelta(days=1)

DatePredicate = Callable[[date], bool]


class TrackerConfigError(Exception):
    """Base class for errors raised by the scheduling engine."""


class InvalidConfig(TrackerConfigError, ValueError):
    """Raised when a tracker's frequency parameters are malformed."""


class OutOfRange(TrackerConfigError):
    """Raised when a date range is inverted or leaves the representable calendar."""


class Frequency(str, Enum):
    """Supported repetition rules for trackers."""

    ONCE = "once"
    DAILY = "daily"
    EVERY_X_DAYS = "every_x_days"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


def weekday_index(day: date) -> int:
    """Return the weekday of ``day`` with Sunday as 0 and Saturday as 6."""

    return day.isoweekday() % 7


def _shift(day: date, days: int) -> date:
    try:
        return day + timedelta(days=days)
    except OverflowError as exc:
        raise OutOfRange(
            f"{day.isoformat()} {days:+d} days falls outside the supported calendar"
        ) from exc


def _shift_clamped(day: date, days: int) -> date:
    try:
        return day + timedelta(days=days)
    except OverflowError:
        return date.max if days > 0 else date.min


def _iter_days(lo: date, hi: date) -> Iterator[date]:
    cursor = lo
    while cursor <= hi:
        yield cursor
        if cursor == date.max:
            return
        cursor += _ONE_DAY


def _month_anchor(year: int, month: int, day_of_month: int) -> date:
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day_of_month, last_day))


def _coerce_date(value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value)
        except ValueError as exc:
            raise InvalidConfig(f"Invalid date {value!r}, expected YYYY-MM-DD") from exc
    raise InvalidConfig(f"Invalid date {value!r}, expected YYYY-MM-DD")


# ---------------------------------------------------------------------------
# Rules: one frozen dataclass per frequency tag.
#
# Each rule answers three questions relative to the tracker's start date:
# does a given day match, which days in [lo, hi] match (ascending, lo >= start),
# and how far past ``lo`` a search for the next match has to look.
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OnceRule:
    """Scheduled on the start date only."""

    frequency: ClassVar[Frequency] = Frequency.ONCE

    def matches(self, day: date, start: date) -> bool:
        return day == start

    def occurrences(self, start: date, lo: date, hi: date) -> Iterator[date]:
        if lo <= start <= hi:
            yield start

    def search_limit(self, start: date, lo: date) -> date:
        return start


@dataclass(frozen=True)
class DailyRule:
    """Scheduled on every day."""

    frequency: ClassVar[Frequency] = Frequency.DAILY

    def matches(self, day: date, start: date) -> bool:
        return True

    def occurrences(self, start: date, lo: date, hi: date) -> Iterator[date]:
        return _iter_days(lo, hi)

    def search_limit(self, start: date, lo: date) -> date:
        return lo


@dataclass(frozen=True)
class EveryXDaysRule:
    """Scheduled every ``interval`` days counting from the start date."""

    interval: int
    frequency: ClassVar[Frequency] = Frequency.EVERY_X_DAYS

    def matches(self, day: date, start: date) -> bool:
        return (day - start).days % self.interval == 0

    def occurrences(self, start: date, lo: date, hi: date) -> Iterator[date]:
        offset = (lo - start).days
        steps = -(-offset // self.interval)
        try:
            cursor = start + timedelta(days=steps * self.interval)
        except OverflowError:
            # The first occurrence at or after ``lo`` lies past date.max.
            return
        step = timedelta(days=self.interval)
        while cursor <= hi:
            yield cursor
            try:
                cursor += step
            except OverflowError:
                return

    def search_limit(self, start: date, lo: date) -> date:
        return _shift_clamped(lo, self.interval - 1)


@dataclass(frozen=True)
class WeeklyRule:
    """Scheduled on the given weekday indices (0=Sunday); empty means never."""

    days: frozenset[int] = frozenset()
    frequency: ClassVar[Frequency] = Frequency.WEEKLY

    def matches(self, day: date, start: date) -> bool:
        return weekday_index(day) in self.days

    def occurrences(self, start: date, lo: date, hi: date) -> Iterator[date]:
        if not self.days:
            return
        for day in _iter_days(lo, hi):
            if weekday_index(day) in self.days:
                yield day

    def search_limit(self, start: date, lo: date) -> date:
        return _shift_clamped(lo, 6)


@dataclass(frozen=True)
class MonthlyRule:
    """Scheduled on the start date's day of month.

    Months too short for that day fall back to their last day, so a tracker
    starting on January 31st is due on February 29th in a leap year and on
    April 30th.
    """

    frequency: ClassVar[Frequency] = Frequency.MONTHLY

    def matches(self, day: date, start: date) -> bool:
        return day == _month_anchor(day.year, day.month, start.day)

    def occurrences(self, start: date, lo: date, hi: date) -> Iterator[date]:
        year, month = lo.year, lo.month
        while True:
            candidate = _month_anchor(year, month, start.day)
            if candidate > hi:
                return
            if candidate >= lo:
                yield candidate
            if month == 12:
                if year == date.max.year:
                    return
                year, month = year + 1, 1
            else:
                month += 1

    def search_limit(self, start: date, lo: date) -> date:
        return _shift_clamped(lo, _MONTHLY_MAX_GAP_DAYS)


@dataclass(frozen=True)
class CustomRule:
    """Caller-provided schedule: an explicit date set or a predicate.

    The engine has no intrinsic rule for custom trackers. When a predicate is
    given it wins; open-ended searches with a predicate stop after
    ``DEFAULT_SEARCH_HORIZON_DAYS``.
    """

    dates: frozenset[date] = frozenset()
    predicate: Optional[DatePredicate] = field(default=None, compare=False)
    frequency: ClassVar[Frequency] = Frequency.CUSTOM

    def matches(self, day: date, start: date) -> bool:
        if self.predicate is not None:
            return bool(self.predicate(day))
        return day in self.dates

    def occurrences(self, start: date, lo: date, hi: date) -> Iterator[date]:
        if self.predicate is not None:
            return (day for day in _iter_days(lo, hi) if self.predicate(day))
        return iter(sorted(day for day in self.dates if lo <= day <= hi))

    def search_limit(self, start: date, lo: date) -> date:
        if self.predicate is not None:
            return _shift_clamped(lo, DEFAULT_SEARCH_HORIZON_DAYS - 1)
        return max(self.dates, default=start)


ScheduleRule = Union[OnceRule, DailyRule, EveryXDaysRule, WeeklyRule, MonthlyRule, CustomRule]


@dataclass(frozen=True)
class TrackerSchedule:
    """A rule bound to the tracker's inclusive date bounds and activity flag."""

    rule: ScheduleRule
    start_date: date
    end_date: Optional[date] = None
    is_active: bool = True

    @property
    def frequency(self) -> Frequency:
        return self.rule.frequency

    def historical(self) -> "TrackerSchedule":
        """Return this schedule with the activity flag ignored.

        Deactivating a tracker stops it from being due, but its past still has
        to be readable for statistics and calendars.
        """

        return self if self.is_active else replace(self, is_active=True)

    def clamp(self, lo: date, hi: date) -> Optional[tuple[date, date]]:
        """Intersect ``[lo, hi]`` with the schedule bounds, or None when empty."""

        lo = max(lo, self.start_date)
        if self.end_date is not None:
            hi = min(hi, self.end_date)
        if lo > hi:
            return None
        return lo, hi


@dataclass(frozen=True)
class Streaks:
    current: int = 0
    best: int = 0


@dataclass(frozen=True)
class TrackerStats:
    """Derived statistics for one tracker as of a reference date."""

    tracker_id: Any
    total_completions: int
    current_streak: int
    best_streak: int
    completion_rate: int
    last_completion_date: Optional[date] = None
    next_scheduled_date: Optional[date] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "tracker_id": self.tracker_id,
            "total_completions": self.total_completions,
            "current_streak": self.current_streak,
            "best_streak": self.best_streak,
            "completion_rate": self.completion_rate,
            "last_completion_date": _iso(self.last_completion_date),
            "next_scheduled_date": _iso(self.next_scheduled_date),
        }


@dataclass(frozen=True)
class TrackerCalendarDay:
    """One calendar cell: whether the day is due and whether it was done."""

    date: date
    is_scheduled: bool
    completed: bool
    completion: Any = None


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


# ---------------------------------------------------------------------------
# Construction and validation
# ---------------------------------------------------------------------------


def build_rule(
    frequency: Union[Frequency, str],
    frequency_value: Optional[int] = 1,
    target_days: Optional[Iterable[int]] = None,
    custom_dates: Optional[Iterable[Union[date, str]]] = None,
    predicate: Optional[DatePredicate] = None,
) -> ScheduleRule:
    """Validate the per-frequency parameters and return the matching rule.

    Parameters that only make sense for another frequency are rejected rather
    than ignored; ``frequency_value`` of 1 is the storage default and is
    accepted for every tag.
    """

    try:
        tag = Frequency(frequency)
    except ValueError as exc:
        raise InvalidConfig(f"Unknown frequency: {frequency!r}") from exc

    days = list(target_days or [])
    dates = list(custom_dates or [])

    if tag is not Frequency.WEEKLY and days:
        raise InvalidConfig("target_days only applies to weekly trackers")
    if tag is not Frequency.EVERY_X_DAYS and frequency_value not in (None, 1):
        raise InvalidConfig("frequency_value only applies to every_x_days trackers")
    if tag is not Frequency.CUSTOM and (dates or predicate is not None):
        raise InvalidConfig("custom dates only apply to custom trackers")

    if tag is Frequency.ONCE:
        return OnceRule()
    if tag is Frequency.DAILY:
        return DailyRule()
    if tag is Frequency.MONTHLY:
        return MonthlyRule()

    if tag is Frequency.EVERY_X_DAYS:
        if isinstance(frequency_value, bool) or not isinstance(frequency_value, int):
            raise InvalidConfig("frequency_value must be an integer")
        if frequency_value < 1:
            raise InvalidConfig("frequency_value must be at least 1")
        if frequency_value > MAX_FREQUENCY_VALUE:
            raise InvalidConfig(f"frequency_value cannot exceed {MAX_FREQUENCY_VALUE}")
        return EveryXDaysRule(interval=frequency_value)

    if tag is Frequency.WEEKLY:
        for value in days:
            if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value <= 6:
                raise InvalidConfig(f"target_days must be weekday indices 0-6, got {value!r}")
        return WeeklyRule(days=frozenset(days))

    if dates and predicate is not None:
        raise InvalidConfig("custom trackers take either explicit dates or a predicate")
    return CustomRule(dates=frozenset(_coerce_date(value) for value in dates), predicate=predicate)


def build_schedule(
    frequency: Union[Frequency, str],
    start_date: Union[date, str],
    end_date: Optional[Union[date, str]] = None,
    *,
    frequency_value: Optional[int] = 1,
    target_days: Optional[Iterable[int]] = None,
    custom_dates: Optional[Iterable[Union[date, str]]] = None,
    predicate: Optional[DatePredicate] = None,
    is_active: bool = True,
) -> TrackerSchedule:
    """Build a validated schedule; raises ``InvalidConfig`` on bad parameters."""

    rule = build_rule(frequency, frequency_value, target_days, custom_dates, predicate)
    start = _coerce_date(start_date)
    end = _coerce_date(end_date) if end_date is not None else None
    if end is not None and end < start:
        raise InvalidConfig("end_date cannot be before start_date")
    return TrackerSchedule(rule=rule, start_date=start, end_date=end, is_active=is_active)


def schedule_from_record(record: Any, *, predicate: Optional[DatePredicate] = None) -> TrackerSchedule:
    """Build a schedule from any object exposing the tracker wire fields."""

    return build_schedule(
        record.frequency,
        record.start_date,
        record.end_date,
        frequency_value=record.frequency_value,
        target_days=record.target_days,
        custom_dates=record.custom_dates,
        predicate=predicate,
        is_active=record.is_active,
    )


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------


def is_scheduled(schedule: TrackerSchedule, day: date) -> bool:
    """Return True when ``day`` is a due date for the schedule."""

    if not schedule.is_active:
        return False
    if day < schedule.start_date:
        return False
    if schedule.end_date is not None and day > schedule.end_date:
        return False
    return schedule.rule.matches(day, schedule.start_date)


def scheduled_dates(schedule: TrackerSchedule, start: date, end: date) -> list[date]:
    """Return the scheduled dates within ``[start, end]`` in ascending order."""

    if start > end:
        raise OutOfRange(f"Range start {start.isoformat()} is after end {end.isoformat()}")
    if not schedule.is_active:
        return []
    window = schedule.clamp(start, end)
    if window is None:
        return []
    lo, hi = window
    return list(schedule.rule.occurrences(schedule.start_date, lo, hi))


def completion_dates(completions: Iterable[Any]) -> frozenset[date]:
    """Normalize dates or completion records into a deduplicated date set."""

    days: set[date] = set()
    for item in completions:
        if isinstance(item, date):
            days.add(item.date() if isinstance(item, datetime) else item)
        else:
            days.add(_coerce_date(item.completion_date))
    return frozenset(days)


def compute_streaks(schedule: TrackerSchedule, completions: Iterable[Any], as_of: date) -> Streaks:
    """Return the current and best streaks as of ``as_of``.

    Streaks count consecutive scheduled dates, so a Mon/Wed/Fri tracker done
    on three such days in a row has a streak of three. A scheduled ``as_of``
    that is not done yet is treated as pending rather than missed.
    """

    if as_of < schedule.start_date:
        return Streaks()
    done = completion_dates(completions)
    due = scheduled_dates(schedule, schedule.start_date, as_of)

    best = run = 0
    for day in due:
        if day in done:
            run += 1
            best = max(best, run)
        else:
            run = 0

    current = 0
    for day in reversed(due):
        if day in done:
            current += 1
        elif day == as_of:
            continue
        else:
            break

    return Streaks(current=current, best=best)


def _percent(part: int, whole: int) -> int:
    # Round half up without going through floats.
    return (200 * part + whole) // (2 * whole)


def completion_rate(schedule: TrackerSchedule, completions: Iterable[Any], as_of: date) -> int:
    """Percentage of scheduled dates up to ``as_of`` that were completed."""

    if as_of < schedule.start_date:
        return 0
    due = scheduled_dates(schedule, schedule.start_date, as_of)
    if not due:
        return 0
    done = completion_dates(completions)
    completed = sum(1 for day in due if day in done)
    return _percent(completed, len(due))


def next_scheduled_date(schedule: TrackerSchedule, as_of: date) -> Optional[date]:
    """Return the first scheduled date strictly after ``as_of``, if any."""

    if not schedule.is_active or as_of == date.max:
        return None
    lo = max(_shift(as_of, 1), schedule.start_date)
    hi = schedule.rule.search_limit(schedule.start_date, lo)
    window = schedule.clamp(lo, hi)
    if window is None:
        return None
    return next(schedule.rule.occurrences(schedule.start_date, *window), None)


def last_completion_date(completions: Iterable[Any], as_of: Optional[date] = None) -> Optional[date]:
    """Return the latest completion date, ignoring any after ``as_of``."""

    days = completion_dates(completions)
    if as_of is not None:
        days = frozenset(day for day in days if day <= as_of)
    return max(days, default=None)


def compute_stats(
    tracker_id: Any,
    schedule: TrackerSchedule,
    completions: Iterable[Any],
    as_of: date,
) -> TrackerStats:
    """Derive every statistic for a tracker from its completion log.

    Streaks and rate are read from the schedule's history, so a paused
    tracker keeps them. The next date follows the live schedule and is None
    while the tracker is inactive.
    """

    counted = frozenset(day for day in completion_dates(completions) if day <= as_of)
    history = schedule.historical()
    streaks = compute_streaks(history, counted, as_of)
    return TrackerStats(
        tracker_id=tracker_id,
        total_completions=len(counted),
        current_streak=streaks.current,
        best_streak=streaks.best,
        completion_rate=completion_rate(history, counted, as_of),
        last_completion_date=max(counted, default=None),
        next_scheduled_date=next_scheduled_date(schedule, as_of),
    )


def calendar_days(
    schedule: TrackerSchedule,
    completions: Iterable[Any],
    start: date,
    end: date,
    *,
    as_of: Optional[date] = None,
) -> list[TrackerCalendarDay]:
    """Return one calendar cell per day in ``[start, end]``.

    ``completions`` is either a mapping of date to record or an iterable of
    dates and records; records are attached to their day.

    An inactive schedule still shows its past: days up to ``as_of`` are
    flagged as they were scheduled, later days are not scheduled.
    """

    if start > end:
        raise OutOfRange(f"Range start {start.isoformat()} is after end {end.isoformat()}")
    by_day: dict[date, Any] = {}
    if isinstance(completions, Mapping):
        by_day = {_coerce_date(day): record for day, record in completions.items()}
        completions = ()
    for item in completions:
        if isinstance(item, date):
            by_day.setdefault(item.date() if isinstance(item, datetime) else item, None)
        else:
            by_day[_coerce_date(item.completion_date)] = item

    history = schedule.historical()

    def _flag(day: date) -> bool:
        if schedule.is_active:
            return is_scheduled(schedule, day)
        return as_of is not None and day <= as_of and is_scheduled(history, day)

    return [
        TrackerCalendarDay(
            date=day,
            is_scheduled=_flag(day),
            completed=day in by_day,
            completion=by_day.get(day),
        )
        for day in _iter_days(start, end)
    ]


__all__ = [
    "CustomRule",
    "DailyRule",
    "DEFAULT_SEARCH_HORIZON_DAYS",
    "EveryXDaysRule",
    "Frequency",
    "InvalidConfig",
    "MAX_FREQUENCY_VALUE",
    "MonthlyRule",
    "OnceRule",
    "OutOfRange",
    "ScheduleRule",
    "Streaks",
    "TrackerCalendarDay",
    "TrackerConfigError",
    "TrackerSchedule",
    "TrackerStats",
    "WeeklyRule",
    "build_rule",
    "build_schedule",
    "calendar_days",
    "completion_dates",
    "completion_rate",
    "compute_stats",
    "compute_streaks",
    "is_scheduled",
    "last_completion_date",
    "next_scheduled_date",
    "schedule_from_record",
    "scheduled_dates",
    "weekday_index",
]

"""Tracker repository protocol."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Optional, Protocol

from ...models.tracker import Tracker, TrackerCompletion
from ...services.scheduling import TrackerStats


@dataclass(frozen=True)
class CompletionResult:
    """Outcome of recording a completion together with the refreshed stats."""

    completion: TrackerCompletion
    created: bool
    stats: TrackerStats


class TrackerRepository(Protocol):
    """Repository for trackers and their completion log."""

    def get_by_id(self, tracker_id: int) -> Optional[Tracker]:
        """Retrieve a tracker by ID regardless of owner."""
        ...

    def list_for_user(
        self, *, user_id: int, project_id: Optional[str] = None, include_inactive: bool = True
    ) -> list[Tracker]:
        """List a user's trackers, newest first."""
        ...

    def list_all(self) -> list[Tracker]:
        """List every tracker."""
        ...

    def create(self, tracker: Tracker, *, user_id: int) -> Tracker:
        """Create a new tracker."""
        ...

    def update(self, tracker: Tracker, *, user_id: int, as_of: date) -> Tracker:
        """Persist tracker changes and refresh its cached aggregates."""
        ...

    def delete(self, tracker_id: int, *, user_id: int) -> bool:
        """Delete a tracker and its completions."""
        ...

    # Completion operations
    def get_completion(self, tracker_id: int, completion_date: date) -> Optional[TrackerCompletion]:
        """Get the completion recorded for a tracker on a day."""
        ...

    def list_completions(
        self, tracker_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[TrackerCompletion]:
        """List a tracker's completions, optionally within a date range."""
        ...

    def completions_by_tracker(self, tracker_ids: list[int]) -> dict[int, list[TrackerCompletion]]:
        """Group the completions of several trackers in one query."""
        ...

    def completions_on(self, completion_date: date, *, user_id: int) -> list[TrackerCompletion]:
        """List a user's completions on a given day."""
        ...

    def record_completion(self, completion: TrackerCompletion, *, as_of: date) -> CompletionResult:
        """Upsert a completion and refresh the tracker's aggregates."""
        ...

    def remove_completion(
        self, tracker_id: int, completion_date: date, *, as_of: date
    ) -> Optional[TrackerStats]:
        """Delete a completion and refresh aggregates; None when nothing was deleted."""
        ...

    def refresh_aggregates(self, tracker_id: int, *, as_of: date) -> Optional[TrackerStats]:
        """Recompute cached aggregates from the full completion log."""
        ...

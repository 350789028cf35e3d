"""SQLModel implementation of the tracker repository."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from ...domain.repositories.tracker import CompletionResult
from ...logging_config import get_logger
from ...models.tracker import Tracker, TrackerCompletion
from ...services.scheduling import TrackerStats
from ...services.trackers import apply_stats, stats_for
from ..database import SessionFactory

logger = get_logger(__name__)


class SQLModelTrackerRepository:
    """SQLModel-based tracker repository implementation.

    Cached aggregates are always rewritten in the same session that changed
    the completion log, so a commit never leaves them out of step.
    """

    def __init__(self, session_factory: SessionFactory):
        """Initialize with a session factory."""
        self.session_factory = session_factory

    def get_by_id(self, tracker_id: int) -> Optional[Tracker]:
        """Retrieve a tracker by ID regardless of owner."""
        with self.session_factory() as session:
            obj = session.get(Tracker, tracker_id)
            if obj:
                session.expunge(obj)
            return obj

    def list_for_user(
        self, *, user_id: int, project_id: Optional[str] = None, include_inactive: bool = True
    ) -> list[Tracker]:
        """List a user's trackers, newest first."""
        with self.session_factory() as session:
            statement = (
                select(Tracker)
                .where(Tracker.user_id == user_id)
                .order_by(Tracker.created_at.desc(), Tracker.id.desc())  # type: ignore[union-attr]
            )
            if project_id is not None:
                statement = statement.where(Tracker.project_id == project_id)
            if not include_inactive:
                statement = statement.where(Tracker.is_active == True)  # noqa: E712

            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def list_all(self) -> list[Tracker]:
        """List every tracker."""
        with self.session_factory() as session:
            rows = list(session.exec(select(Tracker).order_by(Tracker.id)).all())  # type: ignore[arg-type]
            session.expunge_all()
            return rows

    def create(self, tracker: Tracker, *, user_id: int) -> Tracker:
        """Create a new tracker."""
        with self.session_factory() as session:
            tracker.user_id = user_id
            session.add(tracker)
            session.commit()
            session.refresh(tracker)
            session.expunge(tracker)
            return tracker

    def update(self, tracker: Tracker, *, user_id: int, as_of: date) -> Tracker:
        """Persist tracker changes and refresh its cached aggregates."""
        with self.session_factory() as session:
            tracker.user_id = user_id
            tracker.updated_at = datetime.now(timezone.utc)
            tracker = session.merge(tracker)
            self._refresh(session, tracker, as_of)
            session.commit()
            session.refresh(tracker)
            session.expunge(tracker)
            return tracker

    def delete(self, tracker_id: int, *, user_id: int) -> bool:
        """Delete a tracker and its completions."""
        with self.session_factory() as session:
            tracker = session.exec(
                select(Tracker).where(Tracker.id == tracker_id, Tracker.user_id == user_id)
            ).first()
            if tracker is None:
                return False
            for completion in session.exec(
                select(TrackerCompletion).where(TrackerCompletion.tracker_id == tracker_id)
            ).all():
                session.delete(completion)
            session.delete(tracker)
            session.commit()
            return True

    # Completion operations
    def get_completion(self, tracker_id: int, completion_date: date) -> Optional[TrackerCompletion]:
        """Get the completion recorded for a tracker on a day."""
        with self.session_factory() as session:
            obj = self._find_completion(session, tracker_id, completion_date)
            if obj:
                session.expunge(obj)
            return obj

    def list_completions(
        self, tracker_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[TrackerCompletion]:
        """List a tracker's completions, optionally within a date range."""
        with self.session_factory() as session:
            rows = self._completions(session, tracker_id, start, end)
            session.expunge_all()
            return rows

    def completions_by_tracker(self, tracker_ids: list[int]) -> dict[int, list[TrackerCompletion]]:
        """Group the completions of several trackers in one query."""
        grouped: dict[int, list[TrackerCompletion]] = {tracker_id: [] for tracker_id in tracker_ids}
        if not tracker_ids:
            return grouped
        with self.session_factory() as session:
            statement = (
                select(TrackerCompletion)
                .where(TrackerCompletion.tracker_id.in_(tracker_ids))  # type: ignore[attr-defined]
                .order_by(TrackerCompletion.completion_date)  # type: ignore[arg-type]
            )
            rows = list(session.exec(statement).all())
            session.expunge_all()
        for row in rows:
            grouped.setdefault(row.tracker_id, []).append(row)
        return grouped

    def completions_on(self, completion_date: date, *, user_id: int) -> list[TrackerCompletion]:
        """List a user's completions on a given day."""
        with self.session_factory() as session:
            statement = (
                select(TrackerCompletion)
                .join(Tracker, Tracker.id == TrackerCompletion.tracker_id)  # type: ignore[arg-type]
                .where(Tracker.user_id == user_id)
                .where(TrackerCompletion.completion_date == completion_date)
                .order_by(TrackerCompletion.tracker_id)  # type: ignore[arg-type]
            )
            rows = list(session.exec(statement).all())
            session.expunge_all()
            return rows

    def record_completion(self, completion: TrackerCompletion, *, as_of: date) -> CompletionResult:
        """Upsert a completion and refresh the tracker's aggregates.

        Recording the same day twice updates the existing row (notes and
        timestamp) instead of inserting a duplicate.
        """
        try:
            return self._record_completion(completion, as_of)
        except IntegrityError:
            # A concurrent request inserted the same day first; the retry updates it.
            logger.info(
                "Completion insert raced, retrying as update",
                extra={"tracker_id": completion.tracker_id, "completion_date": str(completion.completion_date)},
            )
            return self._record_completion(completion, as_of)

    def _record_completion(self, completion: TrackerCompletion, as_of: date) -> CompletionResult:
        with self.session_factory() as session:
            tracker = session.get(Tracker, completion.tracker_id)
            if tracker is None:
                raise LookupError(f"Tracker {completion.tracker_id} not found")

            existing = self._find_completion(session, completion.tracker_id, completion.completion_date)
            created = existing is None
            if existing is None:
                session.add(completion)
                row = completion
            else:
                if completion.notes is not None:
                    existing.notes = completion.notes
                existing.completed_at = completion.completed_at
                session.add(existing)
                row = existing
            session.flush()

            stats = self._refresh(session, tracker, as_of)
            session.commit()
            session.refresh(row)
            session.expunge(row)
            return CompletionResult(completion=row, created=created, stats=stats)

    def remove_completion(
        self, tracker_id: int, completion_date: date, *, as_of: date
    ) -> Optional[TrackerStats]:
        """Delete a completion and refresh aggregates; None when nothing was deleted."""
        with self.session_factory() as session:
            tracker = session.get(Tracker, tracker_id)
            existing = self._find_completion(session, tracker_id, completion_date)
            if tracker is None or existing is None:
                return None
            session.delete(existing)
            session.flush()
            stats = self._refresh(session, tracker, as_of)
            session.commit()
            return stats

    def refresh_aggregates(self, tracker_id: int, *, as_of: date) -> Optional[TrackerStats]:
        """Recompute cached aggregates from the full completion log."""
        with self.session_factory() as session:
            tracker = session.get(Tracker, tracker_id)
            if tracker is None:
                return None
            stats = self._refresh(session, tracker, as_of)
            session.commit()
            return stats

    # Internal helpers
    @staticmethod
    def _find_completion(
        session: Session, tracker_id: int, completion_date: date
    ) -> Optional[TrackerCompletion]:
        return session.exec(
            select(TrackerCompletion)
            .where(TrackerCompletion.tracker_id == tracker_id)
            .where(TrackerCompletion.completion_date == completion_date)
        ).first()

    @staticmethod
    def _completions(
        session: Session, tracker_id: int, start: Optional[date] = None, end: Optional[date] = None
    ) -> list[TrackerCompletion]:
        statement = select(TrackerCompletion).where(TrackerCompletion.tracker_id == tracker_id)
        if start is not None:
            statement = statement.where(TrackerCompletion.completion_date >= start)
        if end is not None:
            statement = statement.where(TrackerCompletion.completion_date <= end)
        statement = statement.order_by(TrackerCompletion.completion_date)  # type: ignore[arg-type]
        return list(session.exec(statement).all())

    def _refresh(self, session: Session, tracker: Tracker, as_of: date) -> TrackerStats:
        stats = stats_for(tracker, self._completions(session, tracker.id), as_of)
        if apply_stats(tracker, stats):
            tracker.updated_at = datetime.now(timezone.utc)
            session.add(tracker)
            logger.debug(
                "Refreshed tracker aggregates",
                extra={"tracker_id": tracker.id, "as_of": as_of.isoformat(), **stats.to_dict()},
            )
        return stats

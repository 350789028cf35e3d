"""Habit tracker tables.

``total_completions``, ``current_streak`` and ``best_streak`` on ``Tracker``
are a cache of the completion log. They are recomputed from the full set of
``TrackerCompletion`` rows on every completion write and schedule change,
never incremented in place.
"""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import TYPE_CHECKING, ClassVar, Optional

from sqlalchemy import JSON, Column, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:  # pragma: no cover
    from .user import User


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Tracker(SQLModel, table=True):
    """A recurring habit with its schedule rule."""

    __tablename__: ClassVar[str] = "tracker"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", nullable=False, index=True)
    project_id: Optional[str] = Field(default=None, max_length=64, index=True)

    title: str = Field(nullable=False, max_length=200)
    description: str = Field(default="", max_length=1000)
    category: str = Field(default="general", max_length=100)
    icon: Optional[str] = Field(default=None, max_length=64)
    color: Optional[str] = Field(default=None, max_length=32)

    frequency: str = Field(default="daily", max_length=32)
    frequency_value: int = Field(default=1, nullable=False)
    target_days: list[int] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    custom_dates: list[str] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))

    start_date: date = Field(nullable=False)
    end_date: Optional[date] = Field(default=None)
    timezone: Optional[str] = Field(default=None, max_length=64)

    total_completions: int = Field(default=0, nullable=False)
    current_streak: int = Field(default=0, nullable=False)
    best_streak: int = Field(default=0, nullable=False)

    is_active: bool = Field(default=True, nullable=False)
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=_utcnow, nullable=False)

    completions: list["TrackerCompletion"] = Relationship(
        back_populates="tracker",
        sa_relationship=relationship(
            "TrackerCompletion",
            back_populates="tracker",
            cascade="all, delete-orphan",
        ),
    )

    user: "User" = Relationship(sa_relationship=relationship("User", back_populates="trackers"))


class TrackerCompletion(SQLModel, table=True):
    """A tracker performed on one calendar day; at most one per day."""

    __tablename__: ClassVar[str] = "tracker_completion"
    __table_args__ = (
        UniqueConstraint("tracker_id", "completion_date", name="uq_tracker_completion_day"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tracker_id: int = Field(foreign_key="tracker.id", nullable=False, index=True)
    completion_date: date = Field(nullable=False, index=True)
    completed_at: datetime = Field(default_factory=_utcnow, nullable=False)
    notes: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=_utcnow, nullable=False)

    tracker: "Tracker" = Relationship(
        back_populates="completions",
        sa_relationship=relationship("Tracker", back_populates="completions"),
    )

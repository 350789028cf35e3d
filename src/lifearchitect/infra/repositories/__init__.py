"""Concrete repository implementations using SQLModel."""

from .tracker import SQLModelTrackerRepository

__all__ = [
    "SQLModelTrackerRepository",
]

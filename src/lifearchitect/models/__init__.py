"""SQLModel table exports."""

from .tracker import Tracker, TrackerCompletion
from .user import User

__all__ = [
    "Tracker",
    "TrackerCompletion",
    "User",
]

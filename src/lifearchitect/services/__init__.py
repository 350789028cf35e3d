"""Service module exports."""

from . import auth, scheduling, trackers

__all__ = [
    "auth",
    "scheduling",
    "trackers",
]

"""Blueprint exports."""

from . import auth, trackers

__all__ = [
    "auth",
    "trackers",
]

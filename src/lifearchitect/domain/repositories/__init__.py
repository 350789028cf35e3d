"""Repository protocol definitions for domain layer."""

from .tracker import CompletionResult, TrackerRepository

__all__ = [
    "CompletionResult",
    "TrackerRepository",
]

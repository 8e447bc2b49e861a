"""Exception taxonomy for the quiz engine."""
from __future__ import annotations


class MemoraError(Exception):
    """Base class for errors raised by the quiz engine."""


class InsufficientPoolError(MemoraError, ValueError):
    """Raised when a filtered pool is too small to start a session."""

    def __init__(self, found: int, required: int) -> None:
        super().__init__(
            f"Found {found} active items for this selection, at least {required} are required"
        )
        self.found = found
        self.required = required


class QuestionGenerationFailure(MemoraError):
    """Raised when no valid question can be built from the current pool."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


class PersistenceWriteFailure(MemoraError):
    """Raised by repositories when an item or category write fails."""


class SessionStateError(MemoraError, ValueError):
    """Raised when an operation does not apply to the current question."""


__all__ = [
    "InsufficientPoolError",
    "MemoraError",
    "PersistenceWriteFailure",
    "QuestionGenerationFailure",
    "SessionStateError",
]

from __future__ import annotations


class TrackerError(Exception):
    """Base class for failures surfaced to dashboard and CLI callers."""

    code = "tracker_error"

    def __init__(self, message: str, code: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if code:
            self.code = code

    def __str__(self) -> str:
        return self.message


class ValidationError(TrackerError, ValueError):
    """Input the caller can fix. Nothing has been written."""

    code = "validation_error"


class DependencyError(TrackerError):
    """The store failed or a referenced record is missing."""

    code = "dependency_error"

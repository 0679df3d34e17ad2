"""Exceptions raised by the enrollment pipeline.

Only :class:`FatalInputError` stops a batch. The row-level errors are raised
inside a single record's processing and converted into an ``Error`` row
outcome at the record boundary.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence


class EnrollmentError(Exception):
    """Base exception for enrollment failures."""

    def __init__(self, message: str = "Enrollment error occurred", details: Optional[Any] = None) -> None:
        self.message = message
        self.details = details
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class FatalInputError(EnrollmentError):
    """Input cannot be processed at all (empty, unreadable, missing columns)."""

    def __init__(self, diagnostics: Sequence[str]) -> None:
        self.diagnostics: List[str] = [str(line) for line in diagnostics]
        message = self.diagnostics[0] if self.diagnostics else "Invalid input"
        details = "; ".join(self.diagnostics[1:]) or None
        super().__init__(message, details)


class PhotoResolutionError(EnrollmentError):
    """Raised when a photo reference cannot be fetched or decoded."""

    def __init__(self, message: str = "Photo processing failed", details: Optional[Any] = None) -> None:
        super().__init__(message, details)


class NoFaceDetectedError(EnrollmentError):
    """Raised when no face is detected in a photo."""

    def __init__(self, message: str = "No face detected", details: Optional[Any] = None) -> None:
        super().__init__(message, details)


class PersistenceError(EnrollmentError):
    """Raised when a face photo or registry entry cannot be stored."""

    def __init__(self, message: str = "Failed to persist registration", details: Optional[Any] = None) -> None:
        super().__init__(message, details)

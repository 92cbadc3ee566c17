"""Custom exception classes for the Course Hub backend.

This module defines application-specific exceptions following Google Python
Style Guide. Each exception carries the HTTP status code it is answered with,
so route handlers can let them propagate to the handlers registered in
``app.py``.
"""


class CourseHubError(Exception):
    """Base exception for all Course Hub errors."""

    status_code = 500

    def __init__(self, message: str = "Internal server error"):
        """Initialize the exception.

        Args:
            message: Human-readable message returned to the caller.
        """
        self.message = message
        super().__init__(message)


class ValidationError(CourseHubError):
    """Raised when input is malformed or incomplete."""

    status_code = 400


class UnauthenticatedError(CourseHubError):
    """Raised when no valid bearer credential is presented."""

    status_code = 401


class InvalidCredentialsError(CourseHubError):
    """Raised when a supplied password does not match."""

    status_code = 400


class ForbiddenError(CourseHubError):
    """Raised on role or ownership mismatch."""

    status_code = 403


class NotFoundError(CourseHubError):
    """Raised when a requested entity cannot be found."""

    status_code = 404


class ConflictError(CourseHubError):
    """Raised on duplicate registrations or enrollments."""

    status_code = 400


class StorageError(CourseHubError):
    """Raised when the external media store fails."""

    status_code = 502


class ProcessingError(CourseHubError):
    """Raised when post-upload processing (PDF watermarking) fails."""

    status_code = 500

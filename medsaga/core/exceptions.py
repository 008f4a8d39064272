"""Custom application exceptions."""

from typing import Any


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class UnauthorizedException(AppException):
    """Unauthorized access exception."""

    def __init__(self, message: str = "Unauthorized"):
        """Initialize with 401 status code."""
        super().__init__(message, status_code=401)


class ForbiddenException(AppException):
    """Forbidden access exception."""

    def __init__(self, message: str = "Forbidden"):
        """Initialize with 403 status code."""
        super().__init__(message, status_code=403)


class ConflictException(AppException):
    """Conflict exception."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class ValidationException(AppException):
    """Validation error exception.

    Carries one entry per violated field so callers see every problem at once.
    """

    def __init__(
        self,
        message: str = "Validation error",
        errors: list[dict[str, Any]] | None = None,
    ):
        """Initialize with 422 status code and per-field errors."""
        self.errors = errors or []
        super().__init__(message, status_code=422)

    @property
    def fields(self) -> list[str]:
        """Names of the violated fields, in report order."""
        return [error["field"] for error in self.errors]


class StorageException(AppException):
    """Store unavailable or write rejected."""

    def __init__(self, message: str = "Storage unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)


class MessagingException(AppException):
    """Channel publish or consume failure."""

    def __init__(self, message: str = "Messaging unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)

"""Custom application exceptions."""

from pydantic import ValidationError


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, status_code: int = 500):
        """Initialize exception with message and status code."""
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationException(AppException):
    """Required field missing or malformed."""

    def __init__(self, message: str = "Validation error"):
        """Initialize with 422 status code."""
        super().__init__(message, status_code=422)


class ConflictException(AppException):
    """Requested slot overlaps an existing appointment."""

    def __init__(self, message: str = "Conflict"):
        """Initialize with 409 status code."""
        super().__init__(message, status_code=409)


class NotFoundException(AppException):
    """Resource not found exception."""

    def __init__(self, message: str = "Resource not found"):
        """Initialize with 404 status code."""
        super().__init__(message, status_code=404)


class StorageException(AppException):
    """Transport or backend failure while talking to the appointment store."""

    def __init__(self, message: str = "Appointment store unavailable"):
        """Initialize with 503 status code."""
        super().__init__(message, status_code=503)


def validation_message(error: ValidationError) -> str:
    """Flatten a pydantic error into ``field: reason; ...``."""
    parts = []
    for item in error.errors():
        field = ".".join(str(loc) for loc in item["loc"]) or "appointment"
        parts.append(f"{field}: {item['msg']}")
    return "; ".join(parts)

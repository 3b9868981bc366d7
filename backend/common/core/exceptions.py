from typing import Any, Optional


class AppException(Exception):
    """Base application exception.

    ``context`` carries structured fields that are passed to logging as
    ``extra`` and echoed in API error bodies where appropriate.
    """

    def __init__(self, message: str = "", context: Optional[dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class NotFoundError(AppException):
    """Resource not found exception."""

    pass


class ValidationError(AppException):
    """Validation error exception."""

    pass

"""
Booking error taxonomy.

Every rejected booking precondition maps to exactly one ErrorKind. Domain
services raise the BookingError subclasses below; BookingOrchestrator turns
them into BookingResult values and the API maps the kind to a status code.
"""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Closed set of failure kinds surfaced to callers."""

    NOT_FOUND = "NOT_FOUND"
    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"
    AUTHORIZATION = "AUTHORIZATION"
    INTERNAL = "INTERNAL"


class BookingError(Exception):
    """Base class for domain failures raised by the booking services."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __repr__(self) -> str:
        return f"<{type(self).__name__}(kind={self.kind.value}, message='{self.message}')>"


class NotFoundError(BookingError):
    """A referenced entity does not exist."""

    kind = ErrorKind.NOT_FOUND


class ValidationError(BookingError):
    """The request violates a business rule or is malformed."""

    kind = ErrorKind.VALIDATION


class ConflictError(BookingError):
    """A concurrent claim was lost or the resource is already taken."""

    kind = ErrorKind.CONFLICT


class AuthorizationError(BookingError):
    """The caller does not own the resource or lacks the role."""

    kind = ErrorKind.AUTHORIZATION

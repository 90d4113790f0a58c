"""
Typed application errors.

Every failure a handler can report maps to one ErrorKind. The exception
handler in main.py turns an AppError into the structured failure body
``{"success": false, "message": ..., "kind": ...}`` so callers and tests can
branch on the kind instead of matching message strings.
"""

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    CONFLICT = "conflict"
    UNAUTHORIZED = "unauthorized"
    UPSTREAM = "upstream"
    INTEGRITY = "integrity"


class AppError(Exception):
    """Base class for errors reported to the caller"""

    kind: ErrorKind = ErrorKind.VALIDATION
    status_code: int = 400

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code


class ValidationError(AppError):
    """Missing or malformed input; no state was changed"""

    kind = ErrorKind.VALIDATION
    status_code = 400


class NotFoundError(AppError):
    kind = ErrorKind.NOT_FOUND
    status_code = 404


class ConflictError(AppError):
    """Slot already booked, doctor unavailable, duplicate email"""

    kind = ErrorKind.CONFLICT
    status_code = 409


class UnauthorizedError(AppError):
    """Actor does not own the resource (403) or is not authenticated (401)"""

    kind = ErrorKind.UNAUTHORIZED
    status_code = 403


class UpstreamError(AppError):
    """Gateway or database failure; safe to retry the whole request"""

    kind = ErrorKind.UPSTREAM
    status_code = 502


class IntegrityError(AppError):
    """Ledger and slot index may disagree; needs operator attention"""

    kind = ErrorKind.INTEGRITY
    status_code = 500

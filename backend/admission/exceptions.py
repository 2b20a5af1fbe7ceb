"""
Domain errors.

Every error carries a machine-readable ``code`` and a human message; the
HTTP layer maps them to status codes in ``admission.exception_handlers``.
Ticket scan outcomes are not errors, see ``ScanResult``.
"""

from typing import Any


class AdmissionError(Exception):
    """Base class for all domain errors."""

    status_code = 500
    default_code = "INTERNAL_ERROR"

    def __init__(self, message: str, code: str | None = None, **extra: Any) -> None:
        self.message = message
        self.code = code or self.default_code
        self.extra = extra
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        return {"detail": self.message, "code": self.code, **self.extra}


class BadRequestError(AdmissionError):
    status_code = 400
    default_code = "BAD_REQUEST"


class ForbiddenError(AdmissionError):
    status_code = 403
    default_code = "FORBIDDEN"


class NotFoundError(AdmissionError):
    status_code = 404
    default_code = "NOT_FOUND"


class ConflictError(AdmissionError):
    status_code = 409
    default_code = "CONFLICT"


class StoreError(Exception):
    """A persistence call failed for reasons outside the domain rules."""


class DuplicateKeyError(StoreError):
    """An insert hit a unique constraint."""

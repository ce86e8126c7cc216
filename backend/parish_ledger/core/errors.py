"""
Service-layer exceptions.

Services raise these; routers translate them into HTTP responses via
``raise_http_error`` so every endpoint reports failures the same way.
"""

from typing import Optional

from fastapi import HTTPException, status


class LedgerError(Exception):
    """Base class for expected, user-facing failures."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "error"

    def __init__(self, message: str, field: Optional[str] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.field = field
        if code:
            self.code = code

    def to_dict(self) -> dict:
        body = {"success": False, "code": self.code, "message": self.message}
        if self.field:
            body["field"] = self.field
        return body


class ValidationError(LedgerError):
    """Bad input. Nothing was written."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = "validation_error"


class ConflictError(LedgerError):
    """
    The operation was already applied (bank row already processed,
    external id already recorded). Callers may treat it as a no-op.
    """

    status_code = status.HTTP_409_CONFLICT
    code = "already_processed"


class NotFoundError(LedgerError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class PermissionDeniedError(LedgerError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class AmbiguousHouseholdError(ConflictError):
    """The household has no single head of household to compute dues against."""

    code = "ambiguous_household"


class UnmappedPaymentTypeError(LedgerError):
    """A payment type has no GL mapping rule."""

    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    code = "unmapped_payment_type"


def raise_http_error(error: LedgerError):
    """Re-raise a service error as an HTTPException."""
    raise HTTPException(status_code=error.status_code, detail=error.to_dict()) from error

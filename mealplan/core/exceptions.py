"""Custom exception types for domain and API layers."""
from __future__ import annotations

from typing import Any


class AppError(Exception):
    """Base app exception.

    Every subclass maps to one HTTP status and a machine-readable code so the
    API layer can render it without knowing which service raised it.
    """

    status_code = 500
    code = "INTERNAL_ERROR"

    def __init__(self, message: str, *, code: str | None = None, data: Any = None):
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.data = data


class ValidationError(AppError):
    """Validation failure for user input."""

    status_code = 400
    code = "VALIDATION_ERROR"


class PriceMismatchError(ValidationError):
    """Amount paid does not match the plan price."""

    code = "PRICE_MISMATCH"

    def __init__(self, expected: Any, provided: Any):
        super().__init__(
            "Amount paid does not match plan price",
            data={"expectedAmount": expected, "providedAmount": provided},
        )
        self.expected = expected
        self.provided = provided


class NotFoundError(AppError):
    """Unknown id, or an id the caller does not own."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(AppError):
    status_code = 409
    code = "CONFLICT"


class InvalidStateError(AppError):
    """Operation not permitted in the record's current status."""

    status_code = 400
    code = "INVALID_STATE"


class SubscriptionExpiredError(InvalidStateError):
    code = "SUBSCRIPTION_EXPIRED"


class VouchersExhaustedError(InvalidStateError):
    code = "VOUCHERS_EXHAUSTED"


class InternalError(AppError):
    """Persistence or unexpected failure."""

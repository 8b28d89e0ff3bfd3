"""Error taxonomy for the spin-the-wheel core.

The HTTP layer maps these onto status codes; the core itself never imports
FastAPI.
"""

from __future__ import annotations


class SpinWheelError(Exception):
    """Base exception for all campaign errors."""

    status_code = 500
    code = "INTERNAL_ERROR"


class ValidationError(SpinWheelError):
    """Missing or malformed required identifiers. Never retried."""

    status_code = 400
    code = "VALIDATION_ERROR"


class InvalidArgument(ValidationError):
    """Raised by the eligibility check when campaign or email is blank."""


class NotFoundError(SpinWheelError):
    """The operation targets a record that does not exist."""

    status_code = 404
    code = "NOT_FOUND"


class RecordNotFound(NotFoundError):
    pass


class StoreError(SpinWheelError):
    """Persistence failure, surfaced as a generic internal error."""

    code = "STORE_ERROR"


class StaleRecordError(StoreError):
    """A guarded write lost a race against another writer."""


class DispatchError(SpinWheelError):
    """Mail transport failure. Logged and swallowed by the dispatcher."""

    code = "DISPATCH_ERROR"


class QueueSignatureError(SpinWheelError):
    """Queue callback carried a missing or invalid signature."""

    status_code = 401
    code = "INVALID_SIGNATURE"

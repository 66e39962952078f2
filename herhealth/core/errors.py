"""Domain errors raised by the booking services.

Route modules translate these into ``HTTPException`` responses through
:func:`herhealth.routes.common.to_http_exception`.
"""

from fastapi import status


class BookingError(Exception):
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationFailed(BookingError):
    status_code = status.HTTP_400_BAD_REQUEST


class NotFound(BookingError):
    status_code = status.HTTP_404_NOT_FOUND


class Conflict(BookingError):
    status_code = status.HTTP_409_CONFLICT


class PolicyViolation(BookingError):
    """A user-facing rejection, e.g. modifying a booking inside 24 hours."""

    status_code = 422


class ProviderError(BookingError):
    """A downstream provider (Stripe, LinkedIn) failed."""

    status_code = status.HTTP_502_BAD_GATEWAY

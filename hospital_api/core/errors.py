"""HTTP-aware error types raised by services and routes."""

from fastapi import HTTPException, status


class ServiceError(HTTPException):
    """Base class; subclasses pin the status code and a default message."""

    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_detail = 'Request failed.'

    def __init__(self, detail=None, headers: dict[str, str] | None = None):
        super().__init__(
            status_code=self.http_status,
            detail=detail if detail is not None else self.default_detail,
            headers=headers,
        )


class ValidationError(ServiceError):
    http_status = status.HTTP_400_BAD_REQUEST
    default_detail = 'Invalid request.'

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(detail={'field': field, 'message': message})


class AuthenticationError(ServiceError):
    http_status = status.HTTP_401_UNAUTHORIZED
    default_detail = 'Unauthorized'

    def __init__(self, detail=None):
        super().__init__(detail, headers={'WWW-Authenticate': 'Bearer'})


class AuthorizationError(ServiceError):
    http_status = status.HTTP_403_FORBIDDEN
    default_detail = 'Forbidden'


class NotFoundError(ServiceError):
    http_status = status.HTTP_404_NOT_FOUND
    default_detail = 'Not found.'


class ConflictError(ServiceError):
    http_status = status.HTTP_409_CONFLICT
    default_detail = 'Conflict.'


class SlotFullError(ConflictError):
    default_detail = 'This time slot is fully booked.'


class DuplicateBookingError(ConflictError):
    default_detail = 'You already have an appointment in this time slot.'


class AvailabilityConflictError(ConflictError):
    default_detail = 'Availability overlaps an existing active availability window.'


class InvalidStatusTransitionError(ConflictError):
    default_detail = 'Appointment status cannot be changed.'


class InvalidSlotError(ServiceError):
    http_status = status.HTTP_400_BAD_REQUEST
    default_detail = 'The requested time is not a bookable slot for this doctor.'


class StorageError(ServiceError):
    # Never carries the database message; the cause is logged where raised.
    default_detail = 'Internal server error.'

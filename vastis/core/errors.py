"""Booking error taxonomy.

Write paths raise these so callers can tell a taken slot (re-fetch and pick
again) from a form error. Read paths never raise for missing data.
"""


class BookingError(Exception):
    """Base exception for booking core errors."""

    code = "BOOKING_ERROR"

    def __init__(self, message: str, code: str | None = None):
        self.message = message
        if code is not None:
            self.code = code
        super().__init__(message)


class BookingValidationError(BookingError):
    code = "VALIDATION_ERROR"


class PermissionDeniedError(BookingError):
    code = "PERMISSION_DENIED"


class NotFoundError(BookingError):
    code = "NOT_FOUND"


class AppointmentNotFoundError(NotFoundError):
    code = "APPOINTMENT_NOT_FOUND"


class WindowNotFoundError(NotFoundError):
    code = "WINDOW_NOT_FOUND"


class InsuranceNotFoundError(NotFoundError):
    code = "INSURANCE_NOT_FOUND"


class LinkNotFoundError(NotFoundError):
    code = "LINK_NOT_FOUND"


class SlotConflictError(BookingError):
    """The selected tick was booked by someone else before this write."""

    code = "SLOT_CONFLICT"


class AvailabilityConflictError(BookingError):
    code = "AVAILABILITY_CONFLICT"


class AlreadyExistsError(BookingError):
    code = "ALREADY_EXISTS"


class InvalidStatusTransitionError(BookingError):
    code = "INVALID_STATUS_TRANSITION"

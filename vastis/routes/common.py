from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from vastis.core.errors import (
    AlreadyExistsError,
    AvailabilityConflictError,
    BookingError,
    BookingValidationError,
    InvalidStatusTransitionError,
    NotFoundError,
    PermissionDeniedError,
    SlotConflictError,
)
from vastis.database import (
    SchemaMigrationError,
    ensure_appointment_schema,
    ensure_availability_schema,
    ensure_insurance_schema,
)

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'
SCHEMA_MIGRATION_BLOCKED_DETAIL = 'Database migration blocked by double-booked appointments. See the server log.'

ERROR_STATUS_CODES = {
    BookingValidationError: status.HTTP_400_BAD_REQUEST,
    PermissionDeniedError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    SlotConflictError: status.HTTP_409_CONFLICT,
    AvailabilityConflictError: status.HTTP_409_CONFLICT,
    InvalidStatusTransitionError: status.HTTP_409_CONFLICT,
    AlreadyExistsError: status.HTTP_409_CONFLICT,
}


def ensure_database_ready() -> None:
    try:
        ensure_availability_schema()
        ensure_appointment_schema()
        ensure_insurance_schema()
    except SchemaMigrationError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=SCHEMA_MIGRATION_BLOCKED_DETAIL,
        ) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def to_http_exception(exc: BookingError) -> HTTPException:
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type, mapped_status in ERROR_STATUS_CODES.items():
        if isinstance(exc, error_type):
            status_code = mapped_status
            break

    return HTTPException(
        status_code=status_code,
        detail=exc.message,
        headers={'X-Error-Code': exc.code},
    )

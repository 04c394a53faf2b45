from datetime import date, datetime, time
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vastis.auth.dependencies import get_current_identity
from vastis.core import config
from vastis.core.errors import BookingError
from vastis.core.identity import ROLE_PATIENT, ROLE_PRACTITIONER, Identity
from vastis.database import get_db
from vastis.routes.common import database_unavailable, ensure_database_ready, to_http_exception
from vastis.services import booking as booking_service

router = APIRouter(tags=['appointments'])


class CreateAppointmentRequest(BaseModel):
    practitioner_id: int
    location_id: int
    service_type_id: int
    date: date
    time: time
    price: Decimal | None = None
    patient_insurance_id: int | None = None
    notes: str | None = None

    @field_validator('time')
    @classmethod
    def drop_seconds(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0, tzinfo=None)

    @field_validator('price')
    @classmethod
    def validate_price(cls, value: Decimal | None) -> Decimal | None:
        if value is not None and value < 0:
            raise ValueError('Price cannot be negative.')
        return value

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

        return normalized


class UpdateStatusRequest(BaseModel):
    status: str

    @field_validator('status')
    @classmethod
    def normalize_status(cls, value: str) -> str:
        return value.strip().lower().replace('_', '-')


class UpdateNotesRequest(BaseModel):
    notes: str | None = None


class InsuranceClaimRequest(BaseModel):
    patient_insurance_id: int
    claim_amount: Decimal | None = None


class ServiceTypeResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    duration_minutes: int
    default_price: Decimal | None = None

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    patient_id: int
    practitioner_id: int
    location_id: int
    service_type_id: int
    appointment_date: date
    appointment_time: time
    duration_minutes: int
    status: str
    notes: str | None = None
    price: Decimal | None = None
    insurance_claim_id: int | None = None

    class Config:
        from_attributes = True


class InsuranceClaimResponse(BaseModel):
    id: int
    appointment_id: int | None = None
    patient_insurance_id: int
    claim_amount: Decimal
    status: str
    claim_reference: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


class BookingResponse(BaseModel):
    appointment: AppointmentResponse
    insurance_claim: InsuranceClaimResponse | None = None
    warnings: list[str] = []


@router.get('/service-types', response_model=list[ServiceTypeResponse])
def list_service_types(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return booking_service.list_service_types(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    if identity.role != ROLE_PATIENT:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only patients can book appointments.',
        )

    ensure_database_ready()

    try:
        result = booking_service.book_appointment(
            db,
            patient_id=identity.user_id,
            practitioner_id=data.practitioner_id,
            location_id=data.location_id,
            service_type_id=data.service_type_id,
            appointment_date=data.date,
            appointment_time=data.time,
            price=data.price,
            patient_insurance_id=data.patient_insurance_id,
            notes=data.notes,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return BookingResponse(
        appointment=AppointmentResponse.model_validate(result.appointment),
        insurance_claim=(
            InsuranceClaimResponse.model_validate(result.insurance_claim) if result.insurance_claim else None
        ),
        warnings=result.warnings,
    )


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    if identity.role not in {ROLE_PATIENT, ROLE_PRACTITIONER}:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only patients and practitioners have appointments.',
        )

    ensure_database_ready()

    try:
        if identity.role == ROLE_PATIENT:
            return booking_service.list_patient_appointments(db, identity.user_id)
        return booking_service.list_practitioner_appointments(db, identity.user_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/practitioner/{practitioner_id}', response_model=list[AppointmentResponse])
def list_practitioner_appointments(
    practitioner_id: int,
    appointment_status: str | None = Query(default=None, alias='status'),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    if not identity.acts_for(practitioner_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the practitioner can view their schedule.',
        )

    ensure_database_ready()

    try:
        return booking_service.list_practitioner_appointments(db, practitioner_id, appointment_status)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return booking_service.cancel_appointment(db, identity, appointment_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/status', response_model=AppointmentResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return booking_service.update_appointment_status(db, identity, appointment_id, data.status)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{appointment_id}/notes', response_model=AppointmentResponse)
def update_appointment_notes(
    appointment_id: int,
    data: UpdateNotesRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return booking_service.update_appointment_notes(db, identity, appointment_id, data.notes)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post(
    '/{appointment_id}/insurance-claim',
    response_model=InsuranceClaimResponse,
    status_code=status.HTTP_201_CREATED,
)
def attach_insurance_claim(
    appointment_id: int,
    data: InsuranceClaimRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return booking_service.attach_insurance_claim(
            db,
            identity,
            appointment_id,
            patient_insurance_id=data.patient_insurance_id,
            claim_amount=data.claim_amount,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

"""
Booking writer.

Reserves a tick by inserting an appointment. The free-slot check is repeated
here at write time and the insert itself is guarded by the partial unique
index on active appointments, so two patients racing for the same tick end
with one booking and one SlotConflictError.

An insurance claim, when requested, is written in a second transaction after
the appointment is committed. If that step fails the appointment stands and
the result carries a PartialFailure instead of raising.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from vastis.core import config
from vastis.core.errors import (
    AppointmentNotFoundError,
    BookingValidationError,
    InvalidStatusTransitionError,
    PermissionDeniedError,
    SlotConflictError,
)
from vastis.core.identity import Identity
from vastis.models.appointment import ALLOWED_STATUS_TRANSITIONS, Appointment, AppointmentStatus
from vastis.models.insurance import InsuranceClaim
from vastis.models.service_type import ServiceType
from vastis.services import notifications
from vastis.services.insurance import get_patient_insurance
from vastis.services.practitioners import get_practitioner, offers_service, works_at
from vastis.services.slots import get_ticks_for_date

logger = logging.getLogger(__name__)

CLAIM_STATUS_SUBMITTED = 'submitted'
INSURANCE_CLAIM_STEP = 'insurance_claim'


@dataclass(frozen=True)
class PartialFailure:
    appointment_id: int
    step: str
    reason: str

    @property
    def message(self) -> str:
        return (
            f'Appointment {self.appointment_id} was booked, but the {self.step.replace("_", " ")} '
            f'could not be saved: {self.reason}'
        )


@dataclass
class BookingResult:
    appointment: Appointment
    insurance_claim: InsuranceClaim | None = None
    partial_failure: PartialFailure | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.partial_failure is None


def normalize_notes(notes: str | None) -> str | None:
    if notes is None:
        return None

    normalized = notes.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_APPOINTMENT_NOTES_LENGTH:
        raise BookingValidationError(f'Notes must be {config.MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


def parse_status(value: str | AppointmentStatus) -> AppointmentStatus:
    """Accept the enum or its text form; ``no_show`` and ``No-Show`` both mean no-show."""
    if isinstance(value, AppointmentStatus):
        return value

    normalized = (value or '').strip().lower().replace('_', '-')
    try:
        return AppointmentStatus(normalized)
    except ValueError as exc:
        raise BookingValidationError(f'Invalid appointment status: {value!r}.') from exc


def new_claim_reference() -> str:
    return f'CLAIM-{uuid.uuid4().hex[:12].upper()}'


def list_service_types(db: Session) -> list[ServiceType]:
    return db.query(ServiceType).order_by(ServiceType.name.asc()).all()


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise AppointmentNotFoundError('Appointment not found.')
    return appointment


def find_active_appointment(
    db: Session,
    practitioner_id: int,
    location_id: int,
    appointment_date: date,
    appointment_time: time,
) -> Appointment | None:
    return db.query(Appointment).filter(
        Appointment.practitioner_id == practitioner_id,
        Appointment.location_id == location_id,
        Appointment.appointment_date == appointment_date,
        Appointment.appointment_time == appointment_time,
        Appointment.status != AppointmentStatus.CANCELLED.value,
    ).first()


def create_insurance_claim(
    db: Session,
    appointment: Appointment,
    patient_insurance_id: int,
    claim_amount: Decimal,
) -> InsuranceClaim:
    """File the claim and link it back to the appointment in one commit."""
    claim = InsuranceClaim(
        appointment_id=appointment.id,
        patient_insurance_id=patient_insurance_id,
        claim_amount=claim_amount,
        status=CLAIM_STATUS_SUBMITTED,
        claim_reference=new_claim_reference(),
    )
    db.add(claim)
    db.flush()

    appointment.insurance_claim_id = claim.id
    db.commit()
    db.refresh(claim)

    return claim


def book_appointment(
    db: Session,
    patient_id: int,
    practitioner_id: int,
    location_id: int,
    service_type_id: int,
    appointment_date: date,
    appointment_time: time,
    price: Decimal | float | None = None,
    patient_insurance_id: int | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> BookingResult:
    required = (patient_id, practitioner_id, location_id, service_type_id, appointment_date, appointment_time)
    if any(value is None for value in required):
        raise BookingValidationError('Please select all required fields.')

    appointment_time = appointment_time.replace(second=0, microsecond=0)
    notes = normalize_notes(notes)

    current = now or datetime.now()
    if datetime.combine(appointment_date, appointment_time) <= current:
        raise BookingValidationError('Appointments must be scheduled in the future.')

    service_type = db.query(ServiceType).filter(ServiceType.id == service_type_id).first()
    if service_type is None:
        raise BookingValidationError('Unknown service type.')

    get_practitioner(db, practitioner_id)
    if not works_at(db, practitioner_id, location_id):
        raise BookingValidationError('The practitioner does not work at this location.')
    if not offers_service(db, practitioner_id, service_type_id):
        raise BookingValidationError('The practitioner does not offer this service.')

    if price is None:
        price = service_type.default_price
    if price is not None:
        # Zero is a free session; only negative prices are rejected.
        price = Decimal(str(price))
        if price < 0:
            raise BookingValidationError('Price cannot be negative.')

    if appointment_time not in get_ticks_for_date(db, practitioner_id, location_id, appointment_date):
        raise BookingValidationError('The practitioner is not available at this time.')

    if patient_insurance_id is not None:
        if price is None:
            raise BookingValidationError('A price is required to file an insurance claim.')
        get_patient_insurance(db, patient_id, patient_insurance_id)

    if find_active_appointment(db, practitioner_id, location_id, appointment_date, appointment_time):
        raise SlotConflictError('This time is already booked.')

    appointment = Appointment(
        patient_id=patient_id,
        practitioner_id=practitioner_id,
        location_id=location_id,
        service_type_id=service_type_id,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        duration_minutes=service_type.duration_minutes or config.DEFAULT_APPOINTMENT_DURATION_MINUTES,
        status=AppointmentStatus.SCHEDULED.value,
        notes=notes,
        price=price,
    )

    try:
        db.add(appointment)
        db.commit()
    except IntegrityError as exc:
        # Another booker committed the same tick after our check.
        db.rollback()
        raise SlotConflictError('This time is already booked.') from exc
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(appointment)

    appointment_id = appointment.id
    logger.info(
        'Booked appointment %s: patient %s with practitioner %s at location %s on %s %s',
        appointment_id, patient_id, practitioner_id, location_id, appointment_date, appointment_time,
    )

    result = BookingResult(appointment=appointment)

    if patient_insurance_id is not None:
        try:
            result.insurance_claim = create_insurance_claim(db, appointment, patient_insurance_id, price)
        except SQLAlchemyError as exc:
            db.rollback()
            result.partial_failure = PartialFailure(
                appointment_id=appointment_id,
                step=INSURANCE_CLAIM_STEP,
                reason=str(exc.__cause__ or exc).splitlines()[0],
            )
            result.warnings.append(result.partial_failure.message)
            logger.warning('Insurance claim for appointment %s failed: %s', appointment_id, exc)

    notifications.dispatch(notifications.APPOINTMENT_BOOKED, appointment)

    return result


def attach_insurance_claim(
    db: Session,
    identity: Identity,
    appointment_id: int,
    patient_insurance_id: int,
    claim_amount: Decimal | float | None = None,
) -> InsuranceClaim:
    """File a claim for an appointment that has none, e.g. after a PartialFailure."""
    appointment = get_appointment(db, appointment_id)

    if not identity.acts_for(appointment.patient_id):
        raise PermissionDeniedError('Only the patient who booked this appointment can file a claim for it.')

    if appointment.insurance_claim_id is not None:
        raise BookingValidationError('This appointment already has an insurance claim.')

    if appointment.status == AppointmentStatus.CANCELLED.value:
        raise BookingValidationError('Cannot file a claim for a cancelled appointment.')

    get_patient_insurance(db, appointment.patient_id, patient_insurance_id)

    amount = claim_amount if claim_amount is not None else appointment.price
    if amount is None:
        raise BookingValidationError('A claim amount is required.')
    amount = Decimal(str(amount))
    if amount < 0:
        raise BookingValidationError('Claim amount cannot be negative.')

    try:
        claim = create_insurance_claim(db, appointment, patient_insurance_id, amount)
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info('Insurance claim %s attached to appointment %s', claim.claim_reference, appointment_id)
    return claim


def _check_can_change_status(identity: Identity, appointment: Appointment, new_status: AppointmentStatus) -> None:
    if identity.is_admin or identity.user_id == appointment.practitioner_id:
        return
    if identity.user_id == appointment.patient_id and new_status == AppointmentStatus.CANCELLED:
        return
    if identity.user_id == appointment.patient_id:
        raise PermissionDeniedError('Patients can only cancel their appointments.')
    raise PermissionDeniedError('You are not allowed to change this appointment.')


def update_appointment_status(
    db: Session,
    identity: Identity,
    appointment_id: int,
    new_status: str | AppointmentStatus,
) -> Appointment:
    target = parse_status(new_status)
    appointment = get_appointment(db, appointment_id)
    _check_can_change_status(identity, appointment, target)

    try:
        current = parse_status(appointment.status)
    except BookingValidationError as exc:
        raise InvalidStatusTransitionError(f'Appointment has an unknown status {appointment.status!r}.') from exc

    if target not in ALLOWED_STATUS_TRANSITIONS[current]:
        raise InvalidStatusTransitionError(f'Cannot change appointment from {current.value} to {target.value}.')

    appointment.status = target.value
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(appointment)

    logger.info('Appointment %s is now %s (changed by user %s)', appointment_id, target.value, identity.user_id)

    if target == AppointmentStatus.CANCELLED:
        notifications.dispatch(notifications.APPOINTMENT_CANCELLED, appointment)
    else:
        notifications.dispatch(notifications.APPOINTMENT_STATUS_CHANGED, appointment)

    return appointment


def cancel_appointment(db: Session, identity: Identity, appointment_id: int) -> Appointment:
    """Mark the appointment cancelled. The row is kept; its tick frees up immediately."""
    return update_appointment_status(db, identity, appointment_id, AppointmentStatus.CANCELLED)


def update_appointment_notes(db: Session, identity: Identity, appointment_id: int, notes: str | None) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    if not identity.acts_for(appointment.practitioner_id):
        raise PermissionDeniedError('Only the practitioner can edit appointment notes.')

    appointment.notes = normalize_notes(notes)
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(appointment)
    return appointment


def list_patient_appointments(db: Session, patient_id: int) -> list[Appointment]:
    return db.query(Appointment).filter(
        Appointment.patient_id == patient_id,
    ).order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc()).all()


def list_practitioner_appointments(
    db: Session,
    practitioner_id: int,
    status: str | AppointmentStatus | None = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(Appointment.practitioner_id == practitioner_id)
    if status is not None:
        query = query.filter(Appointment.status == parse_status(status).value)

    return query.order_by(Appointment.appointment_date.asc(), Appointment.appointment_time.asc()).all()

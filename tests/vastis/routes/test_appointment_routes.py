import os
from datetime import date, time
from decimal import Decimal

import pytest
from fastapi import HTTPException
from pydantic import ValidationError
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from vastis.core.identity import ROLE_GYM, ROLE_PATIENT, ROLE_PRACTITIONER, Identity  # noqa: E402
from vastis.database import Base  # noqa: E402
from vastis.models.appointment import Appointment  # noqa: E402
from vastis.models.availability import AvailabilityWindow  # noqa: E402
from vastis.models.insurance import InsuranceClaim, PatientInsurance  # noqa: E402, F401
from vastis.models.location import Location  # noqa: E402
from vastis.models.practitioner import PractitionerLocation, PractitionerService  # noqa: E402
from vastis.models.service_type import ServiceType  # noqa: E402
from vastis.models.user import User  # noqa: E402
from vastis.routes.appointment_routes import (  # noqa: E402
    CreateAppointmentRequest,
    InsuranceClaimRequest,
    UpdateStatusRequest,
    attach_insurance_claim,
    cancel_appointment,
    create_appointment,
    list_my_appointments,
    list_practitioner_appointments,
    list_service_types,
    update_appointment_status,
)
from vastis.services import booking  # noqa: E402

MONDAY = date(2040, 1, 2)

PRACTITIONER = Identity(user_id=1, role=ROLE_PRACTITIONER)
PATIENT = Identity(user_id=2, role=ROLE_PATIENT)
OTHER_PATIENT = Identity(user_id=3, role=ROLE_PATIENT)
GYM = Identity(user_id=4, role=ROLE_GYM)


@pytest.fixture
def appointment_db(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr('vastis.routes.appointment_routes.ensure_database_ready', lambda: None)

    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        db.add_all([
            User(id=1, email='physio@vastis.test', role='practitioner'),
            User(id=2, email='patient@vastis.test', role='patient'),
            User(id=3, email='other@vastis.test', role='patient'),
            Location(id=7, name='Harbour Gym'),
            ServiceType(id=1, name='Physiotherapy', duration_minutes=60, default_price=Decimal('80.00')),
            PractitionerLocation(practitioner_id=1, location_id=7),
            PractitionerService(practitioner_id=1, service_type_id=1),
            PatientInsurance(id=1, patient_id=2, provider_name='Acme Health', policy_number='AC-1001'),
            AvailabilityWindow(
                practitioner_id=1, location_id=7, weekday=0, start_time=time(9, 0), end_time=time(12, 0)
            ),
        ])
        db.commit()
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


def _request(**overrides) -> CreateAppointmentRequest:
    fields = {
        'practitioner_id': 1,
        'location_id': 7,
        'service_type_id': 1,
        'date': MONDAY,
        'time': time(10, 0),
    }
    fields.update(overrides)
    return CreateAppointmentRequest(**fields)


def test_create_appointment_request_normalizes_fields() -> None:
    request = _request(time=time(10, 0, 59), notes='  Knee pain  ')

    assert request.time == time(10, 0)
    assert request.notes == 'Knee pain'


def test_create_appointment_request_blank_notes_become_none() -> None:
    assert _request(notes='   ').notes is None


@pytest.mark.parametrize('overrides', [{'price': Decimal('-1')}, {'notes': 'x' * 601}])
def test_create_appointment_request_rejects_invalid_fields(overrides: dict) -> None:
    with pytest.raises(ValidationError):
        _request(**overrides)


def test_create_appointment_books_free_session(appointment_db) -> None:
    response = create_appointment(_request(price=Decimal('0')), identity=PATIENT, db=appointment_db)

    assert response.appointment.price == Decimal('0')


def test_update_status_request_normalizes_vocabulary() -> None:
    assert UpdateStatusRequest(status=' No_Show ').status == 'no-show'


def test_list_service_types_returns_durations(appointment_db) -> None:
    service_types = list_service_types(db=appointment_db)

    assert [(item.name, item.duration_minutes) for item in service_types] == [('Physiotherapy', 60)]


def test_create_appointment_books_for_calling_patient(appointment_db) -> None:
    response = create_appointment(_request(), identity=PATIENT, db=appointment_db)

    assert response.appointment.patient_id == 2
    assert response.appointment.status == 'scheduled'
    assert response.appointment.duration_minutes == 60
    assert response.insurance_claim is None
    assert response.warnings == []


def test_create_appointment_rejects_non_patients(appointment_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_appointment(_request(), identity=PRACTITIONER, db=appointment_db)

    assert exception_info.value.status_code == 403
    assert exception_info.value.detail == 'Only patients can book appointments.'


def test_create_appointment_returns_409_when_tick_is_taken(appointment_db) -> None:
    create_appointment(_request(), identity=PATIENT, db=appointment_db)

    with pytest.raises(HTTPException) as exception_info:
        create_appointment(_request(), identity=OTHER_PATIENT, db=appointment_db)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'This time is already booked.'
    assert exception_info.value.headers == {'X-Error-Code': 'SLOT_CONFLICT'}


def test_create_appointment_returns_400_for_time_outside_availability(appointment_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_appointment(_request(time=time(15, 0)), identity=PATIENT, db=appointment_db)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'The practitioner is not available at this time.'


def test_create_appointment_with_insurance_returns_claim(appointment_db) -> None:
    response = create_appointment(_request(patient_insurance_id=1), identity=PATIENT, db=appointment_db)

    assert response.insurance_claim is not None
    assert response.insurance_claim.claim_amount == Decimal('80.00')
    assert response.appointment.insurance_claim_id == response.insurance_claim.id


def test_create_appointment_surfaces_claim_failure_as_warning(appointment_db, monkeypatch: pytest.MonkeyPatch) -> None:
    def failing_claim(*args, **kwargs):
        raise OperationalError('INSERT INTO insurance_claims', {}, Exception('claims table is unavailable'))

    monkeypatch.setattr(booking, 'create_insurance_claim', failing_claim)

    response = create_appointment(_request(patient_insurance_id=1), identity=PATIENT, db=appointment_db)

    assert response.appointment.status == 'scheduled'
    assert response.appointment.insurance_claim_id is None
    assert response.insurance_claim is None
    assert len(response.warnings) == 1
    assert 'insurance claim could not be saved' in response.warnings[0]


def test_attach_insurance_claim_endpoint_files_claim(appointment_db) -> None:
    response = create_appointment(_request(), identity=PATIENT, db=appointment_db)

    claim = attach_insurance_claim(
        response.appointment.id,
        InsuranceClaimRequest(patient_insurance_id=1, claim_amount=Decimal('60.00')),
        identity=PATIENT,
        db=appointment_db,
    )

    assert claim.claim_amount == Decimal('60.00')
    assert appointment_db.get(Appointment, response.appointment.id).insurance_claim_id == claim.id


def test_cancel_appointment_marks_cancelled(appointment_db) -> None:
    response = create_appointment(_request(), identity=PATIENT, db=appointment_db)

    cancelled = cancel_appointment(response.appointment.id, identity=PATIENT, db=appointment_db)

    assert cancelled.status == 'cancelled'
    assert appointment_db.query(Appointment).count() == 1


def test_cancel_appointment_returns_404_when_missing(appointment_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(999, identity=PATIENT, db=appointment_db)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Appointment not found.'


def test_cancel_appointment_rejects_non_owner(appointment_db) -> None:
    response = create_appointment(_request(), identity=PATIENT, db=appointment_db)

    with pytest.raises(HTTPException) as exception_info:
        cancel_appointment(response.appointment.id, identity=OTHER_PATIENT, db=appointment_db)

    assert exception_info.value.status_code == 403


def test_update_status_returns_409_for_terminal_appointment(appointment_db) -> None:
    response = create_appointment(_request(), identity=PATIENT, db=appointment_db)
    update_appointment_status(
        response.appointment.id,
        UpdateStatusRequest(status='completed'),
        identity=PRACTITIONER,
        db=appointment_db,
    )

    with pytest.raises(HTTPException) as exception_info:
        update_appointment_status(
            response.appointment.id,
            UpdateStatusRequest(status='scheduled'),
            identity=PRACTITIONER,
            db=appointment_db,
        )

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Cannot change appointment from completed to scheduled.'


def test_list_my_appointments_uses_caller_role(appointment_db) -> None:
    create_appointment(_request(), identity=PATIENT, db=appointment_db)

    assert len(list_my_appointments(identity=PATIENT, db=appointment_db)) == 1
    assert len(list_my_appointments(identity=PRACTITIONER, db=appointment_db)) == 1
    assert list_my_appointments(identity=OTHER_PATIENT, db=appointment_db) == []


def test_list_my_appointments_rejects_gym_accounts(appointment_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_my_appointments(identity=GYM, db=appointment_db)

    assert exception_info.value.status_code == 403


def test_list_practitioner_appointments_rejects_other_callers(appointment_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_practitioner_appointments(1, appointment_status=None, identity=PATIENT, db=appointment_db)

    assert exception_info.value.status_code == 403


def test_list_practitioner_appointments_returns_400_for_unknown_status(appointment_db) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_practitioner_appointments(1, appointment_status='pending', identity=PRACTITIONER, db=appointment_db)

    assert exception_info.value.status_code == 400

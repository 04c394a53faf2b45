from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vastis.auth.dependencies import get_current_identity
from vastis.core.errors import BookingError
from vastis.core.identity import ROLE_PATIENT, Identity
from vastis.database import get_db
from vastis.routes.common import database_unavailable, ensure_database_ready, to_http_exception
from vastis.services import insurance as insurance_service

router = APIRouter(tags=['insurance'])


class AddInsuranceRequest(BaseModel):
    provider_name: str
    policy_number: str
    group_number: str | None = None
    coverage_details: str | None = None
    patient_id: int | None = None

    @field_validator('provider_name', 'policy_number')
    @classmethod
    def require_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized


class PatientInsuranceResponse(BaseModel):
    id: int
    patient_id: int
    provider_name: str
    policy_number: str
    group_number: str | None = None
    coverage_details: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


@router.get('', response_model=list[PatientInsuranceResponse])
def list_insurance(
    patient_id: int | None = Query(default=None),
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    target_patient_id = patient_id if patient_id is not None else identity.user_id
    if not identity.acts_for(target_patient_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the patient can view their insurance.',
        )

    ensure_database_ready()

    try:
        return insurance_service.list_patient_insurance(db, target_patient_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=PatientInsuranceResponse, status_code=status.HTTP_201_CREATED)
def add_insurance(
    data: AddInsuranceRequest,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    if identity.role != ROLE_PATIENT and not identity.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only patients can add insurance.',
        )

    ensure_database_ready()

    patient_id = data.patient_id if data.patient_id is not None else identity.user_id
    try:
        return insurance_service.add_patient_insurance(
            db,
            identity,
            patient_id,
            provider_name=data.provider_name,
            policy_number=data.policy_number,
            group_number=data.group_number,
            coverage_details=data.coverage_details,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.delete('/{insurance_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_insurance(
    insurance_id: int,
    identity: Identity = Depends(get_current_identity),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        insurance_service.remove_patient_insurance(db, identity, insurance_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

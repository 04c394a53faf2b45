"""Insurance policies a patient keeps on file for booking."""

import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from vastis.core.errors import BookingValidationError, InsuranceNotFoundError, PermissionDeniedError
from vastis.core.identity import Identity
from vastis.models.insurance import InsuranceClaim, PatientInsurance

logger = logging.getLogger(__name__)


def _check_can_manage(identity: Identity, patient_id: int) -> None:
    if not identity.acts_for(patient_id):
        raise PermissionDeniedError('Only the patient can manage their insurance.')


def _clean(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


def get_patient_insurance(db: Session, patient_id: int, insurance_id: int) -> PatientInsurance:
    """Return the policy when it belongs to the patient; booking uses this as a validation step."""
    insurance = db.query(PatientInsurance).filter(
        PatientInsurance.id == insurance_id,
        PatientInsurance.patient_id == patient_id,
    ).first()
    if insurance is None:
        raise BookingValidationError('Selected insurance was not found for this patient.')
    return insurance


def list_patient_insurance(db: Session, patient_id: int) -> list[PatientInsurance]:
    return db.query(PatientInsurance).filter(
        PatientInsurance.patient_id == patient_id,
    ).order_by(PatientInsurance.id.asc()).all()


def add_patient_insurance(
    db: Session,
    identity: Identity,
    patient_id: int,
    provider_name: str,
    policy_number: str,
    group_number: str | None = None,
    coverage_details: str | None = None,
) -> PatientInsurance:
    _check_can_manage(identity, patient_id)

    provider_name = _clean(provider_name)
    policy_number = _clean(policy_number)
    if not provider_name or not policy_number:
        raise BookingValidationError('Provider name and policy number are required.')

    insurance = PatientInsurance(
        patient_id=patient_id,
        provider_name=provider_name,
        policy_number=policy_number,
        group_number=_clean(group_number),
        coverage_details=_clean(coverage_details),
    )
    try:
        db.add(insurance)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise
    db.refresh(insurance)

    logger.info('Patient %s added insurance %s', patient_id, insurance.id)
    return insurance


def remove_patient_insurance(db: Session, identity: Identity, insurance_id: int) -> None:
    insurance = db.query(PatientInsurance).filter(PatientInsurance.id == insurance_id).first()
    if insurance is None:
        raise InsuranceNotFoundError('Insurance not found.')

    _check_can_manage(identity, insurance.patient_id)

    # Claims keep pointing at the policy they were filed against.
    has_claims = db.query(InsuranceClaim.id).filter(
        InsuranceClaim.patient_insurance_id == insurance_id,
    ).first() is not None
    if has_claims:
        raise BookingValidationError('Insurance with filed claims cannot be removed.')

    try:
        db.delete(insurance)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info('Insurance %s removed by user %s', insurance_id, identity.user_id)

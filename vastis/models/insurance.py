"""Insurance model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, Numeric, String, func
from vastis.database import Base


class PatientInsurance(Base):
    """An insurance policy a patient has on file."""
    __tablename__ = "patient_insurance"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    provider_name = Column(String, nullable=False)
    policy_number = Column(String, nullable=False)
    group_number = Column(String)
    coverage_details = Column(String)
    created_at = Column(DateTime, server_default=func.now())


class InsuranceClaim(Base):
    """A claim filed against a patient's insurance for one appointment."""
    __tablename__ = "insurance_claims"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), index=True)
    patient_insurance_id = Column(Integer, ForeignKey("patient_insurance.id"), nullable=False, index=True)
    claim_amount = Column(Numeric(10, 2), nullable=False)
    status = Column(String, nullable=False, default="submitted")
    claim_reference = Column(String, unique=True)
    created_at = Column(DateTime, server_default=func.now())

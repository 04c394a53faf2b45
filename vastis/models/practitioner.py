"""Practitioner association model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer, UniqueConstraint, func
from vastis.database import Base


class PractitionerLocation(Base):
    """Links a practitioner to a gym or clinic they see patients at."""
    __tablename__ = "practitioner_locations"
    __table_args__ = (
        UniqueConstraint("practitioner_id", "location_id", name="uq_practitioner_locations_pair"),
    )

    id = Column(Integer, primary_key=True)
    practitioner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    created_at = Column(DateTime, server_default=func.now())


class PractitionerService(Base):
    """Links a practitioner to a service type they offer."""
    __tablename__ = "practitioner_services"
    __table_args__ = (
        UniqueConstraint("practitioner_id", "service_type_id", name="uq_practitioner_services_pair"),
    )

    id = Column(Integer, primary_key=True)
    practitioner_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    service_type_id = Column(Integer, ForeignKey("service_types.id"), nullable=False, index=True)
    created_at = Column(DateTime, server_default=func.now())

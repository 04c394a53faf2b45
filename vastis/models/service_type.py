"""Service type model definitions."""

from sqlalchemy import Column, Integer, Numeric, String

from vastis.core import config
from vastis.database import Base


class ServiceType(Base):
    """A bookable kind of treatment and how long it takes."""
    __tablename__ = "service_types"

    id = Column(Integer, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    description = Column(String)
    duration_minutes = Column(Integer, nullable=False, default=config.DEFAULT_APPOINTMENT_DURATION_MINUTES)
    default_price = Column(Numeric(10, 2))

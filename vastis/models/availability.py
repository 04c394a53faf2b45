"""Availability model definitions."""

from sqlalchemy import CheckConstraint, Column, DateTime, ForeignKey, Index, Integer, Time, func
from vastis.database import Base


class AvailabilityWindow(Base):
    """A recurring weekly open period for a practitioner at a location.

    ``weekday`` follows ``date.weekday()``: Monday is 0 and Sunday is 6.
    """
    __tablename__ = "availability_windows"
    __table_args__ = (
        CheckConstraint("weekday >= 0 AND weekday <= 6", name="ck_availability_windows_weekday"),
        CheckConstraint("start_time < end_time", name="ck_availability_windows_range"),
        Index("idx_availability_windows_lookup", "practitioner_id", "location_id", "weekday"),
    )

    id = Column(Integer, primary_key=True)
    practitioner_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    location_id = Column(Integer, ForeignKey("locations.id"), nullable=False)
    weekday = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    created_at = Column(DateTime, server_default=func.now())

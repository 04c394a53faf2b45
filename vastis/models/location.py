"""Location model definitions."""

from sqlalchemy import Column, Integer, String
from vastis.database import Base


class Location(Base):
    """A gym or clinic where practitioners see patients."""
    __tablename__ = "locations"

    id = Column(Integer, primary_key=True)
    name = Column(String, nullable=False)
    address = Column(String)

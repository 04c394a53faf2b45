"""User model definitions."""

from sqlalchemy import Column, Integer, String
from vastis.database import Base


class User(Base):
    """An account holder; patients and practitioners are both users."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    full_name = Column(String)
    hashed_password = Column(String)
    role = Column(String, nullable=False, default="patient")  # patient/practitioner/gym/admin

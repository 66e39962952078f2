"""User model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from herhealth.database import Base


class User(Base):
    """Represents a patient or a doctor account."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    first_name = Column(String, nullable=False)
    last_name = Column(String, nullable=False)
    is_doctor = Column(Boolean, default=False)
    phone = Column(String)
    stripe_customer_id = Column(String)
    created_at = Column(DateTime, default=datetime.now)

"""Doctor invite model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, DateTime, Integer, String
from herhealth.database import Base


class DoctorInvite(Base):
    """Single-use, time-limited onboarding token for a prospective doctor."""
    __tablename__ = "doctor_invites"

    id = Column(Integer, primary_key=True)
    email = Column(String, nullable=False)
    token = Column(String, unique=True, index=True, nullable=False)
    is_used = Column(Boolean, default=False, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    created_at = Column(DateTime, default=datetime.now)

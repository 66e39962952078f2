"""Doctor profile model definitions."""

from sqlalchemy import Column, ForeignKey, Integer, String, Text
from herhealth.database import Base


class DoctorProfile(Base):
    """Public profile of an onboarded doctor."""
    __tablename__ = "doctor_profiles"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    specialty = Column(String, nullable=False)
    qualifications = Column(String, nullable=False)
    experience = Column(String, nullable=False)
    bio = Column(Text)
    profile_image = Column(String)
    stripe_account_id = Column(String)

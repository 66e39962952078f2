"""Slot model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, UniqueConstraint
from herhealth.database import Base


class Slot(Base):
    """A bookable (date, time) unit of a doctor's availability."""
    __tablename__ = "slots"
    __table_args__ = (UniqueConstraint("doctor_id", "date", "time", name="uq_slots_doctor_date_time"),)

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctor_profiles.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    time = Column(String(5), nullable=False)  # HH:MM, doctor's local time
    is_available = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime, default=datetime.now)

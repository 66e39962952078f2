"""Booking model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, String, Text
from herhealth.database import Base

STATUS_PENDING = "pending"
STATUS_CONFIRMED = "confirmed"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"
STATUS_RESCHEDULED = "rescheduled"

BOOKING_STATUSES = (
    STATUS_PENDING,
    STATUS_CONFIRMED,
    STATUS_COMPLETED,
    STATUS_CANCELLED,
    STATUS_RESCHEDULED,
)
# Bookings in these states hold their slot.
ACTIVE_STATUSES = (STATUS_PENDING, STATUS_CONFIRMED)

PAYMENT_UNPAID = "unpaid"
PAYMENT_PAID = "paid"


class Booking(Base):
    """A patient's claim on a slot."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    patient_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctor_profiles.id"), nullable=False, index=True)
    slot_id = Column(Integer, ForeignKey("slots.id"), nullable=False)
    appointment_date = Column(Date, nullable=False)
    appointment_time = Column(String(5), nullable=False)
    appointment_start = Column(DateTime, nullable=False, index=True)
    reason_for_consultation = Column(Text)
    patient_phone = Column(String)
    status = Column(String, default=STATUS_PENDING, nullable=False)
    payment_status = Column(String, default=PAYMENT_UNPAID, nullable=False)
    payment_intent_id = Column(String, index=True)
    reminders_sent = Column(Boolean, default=False, nullable=False)
    reschedule_count = Column(Integer, default=0, nullable=False)
    meeting_url = Column(String)
    symptom_data = Column(Text)
    symptom_summary = Column(Text)
    intake_summary = Column(Text)
    intake_recommendation = Column(String)
    intake_priority = Column(String)
    created_at = Column(DateTime, default=datetime.now)

"""Booking lifecycle: create, confirm, complete, cancel and reschedule.

Every mutating operation runs in one transaction on the injected session and
is rolled back as a whole on failure, so a booking never points at a slot it
did not successfully reserve. Notifications are handed to a ``Notifier`` and
run outside the transaction.
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from herhealth.core import config
from herhealth.core.errors import Conflict, NotFound, PolicyViolation, ValidationFailed
from herhealth.models.booking import (
    ACTIVE_STATUSES,
    PAYMENT_PAID,
    PAYMENT_UNPAID,
    STATUS_CANCELLED,
    STATUS_COMPLETED,
    STATUS_CONFIRMED,
    STATUS_PENDING,
    Booking,
)
from herhealth.models.doctor import DoctorProfile
from herhealth.models.user import User
from herhealth.services import notifications
from herhealth.services.notifications import BookingDetails, Notifier
from herhealth.services.slot_registry import SlotRegistry, slot_start

logger = logging.getLogger(__name__)

MODIFICATION_NOTICE = timedelta(hours=24)
JOIN_OPENS_BEFORE = timedelta(minutes=15)
JOIN_CLOSES_AFTER = timedelta(minutes=30)

MODIFICATION_WINDOW_MESSAGE = "Bookings cannot be modified within 24 hours of the appointment."


def can_modify(booking: Booking, now: datetime) -> bool:
    return booking.status in ACTIVE_STATUSES and booking.appointment_start - now >= MODIFICATION_NOTICE


def can_join(booking: Booking, now: datetime) -> bool:
    if booking.status not in ACTIVE_STATUSES:
        return False
    return booking.appointment_start - JOIN_OPENS_BEFORE <= now <= booking.appointment_start + JOIN_CLOSES_AFTER


def meeting_url_for(booking_id: int) -> str:
    return config.MEETING_URL_TEMPLATE.format(booking_id=booking_id)


class BookingLifecycleManager:
    def __init__(self, db: Session, notifier: Notifier | None = None, slots: SlotRegistry | None = None):
        self.db = db
        self.notifier = notifier
        self.slots = slots or SlotRegistry(db)

    def _notify(self, func, *args) -> None:
        if self.notifier is None:
            logger.debug("No notifier configured; skipping %s", func.__name__)
            return
        self.notifier.enqueue(func, *args)

    def get_booking(self, booking_id: int) -> Booking:
        booking = self.db.get(Booking, booking_id)
        if booking is None:
            raise NotFound("Booking not found.")
        return booking

    def find_by_payment_intent(self, payment_intent_id: str) -> Booking | None:
        return self.db.query(Booking).filter(Booking.payment_intent_id == payment_intent_id).first()

    def list_for_patient(self, email: str) -> list[Booking]:
        patient = self.db.query(User).filter(User.email == email.strip().lower()).first()
        if patient is None:
            raise NotFound("User not found.")
        return (
            self.db.query(Booking)
            .filter(Booking.patient_id == patient.id)
            .order_by(Booking.appointment_start.asc())
            .all()
        )

    def list_for_doctor(self, doctor_id: int) -> list[Booking]:
        return (
            self.db.query(Booking)
            .filter(Booking.doctor_id == doctor_id)
            .order_by(Booking.appointment_start.asc())
            .all()
        )

    def booking_details(self, booking: Booking) -> BookingDetails:
        doctor = self.db.get(DoctorProfile, booking.doctor_id)
        patient = self.db.get(User, booking.patient_id)
        if doctor is None or patient is None:
            raise NotFound(f"Missing doctor or patient for booking #{booking.id}.")
        doctor_user = self.db.get(User, doctor.user_id)
        return BookingDetails.from_records(booking, doctor, doctor_user, patient)

    def get_or_create_patient(self, email: str, first_name: str, last_name: str) -> User:
        normalized = email.strip().lower()
        patient = self.db.query(User).filter(User.email == normalized).first()
        if patient is None:
            patient = User(email=normalized, first_name=first_name, last_name=last_name, is_doctor=False)
            self.db.add(patient)
            self.db.flush()
        return patient

    def create_booking(
        self,
        slot_id: int,
        patient: User,
        reason_for_consultation: str | None = None,
        patient_phone: str | None = None,
        now: datetime | None = None,
    ) -> Booking:
        now = now or datetime.now()
        try:
            slot = self.slots.get_slot(slot_id)
            start = slot_start(slot.date, slot.time)
            if start <= now:
                raise ValidationFailed("Appointments must be scheduled in the future.")
            if self.db.get(DoctorProfile, slot.doctor_id) is None:
                raise NotFound("Doctor not found.")

            self.slots.reserve(slot_id)
            booking = Booking(
                patient_id=patient.id,
                doctor_id=slot.doctor_id,
                slot_id=slot.id,
                appointment_date=slot.date,
                appointment_time=slot.time,
                appointment_start=start,
                reason_for_consultation=reason_for_consultation,
                patient_phone=patient_phone or patient.phone,
                status=STATUS_PENDING,
                payment_status=PAYMENT_UNPAID,
                reminders_sent=False,
            )
            self.db.add(booking)
            self.db.flush()
            booking.meeting_url = meeting_url_for(booking.id)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info("Booking #%s created for slot #%s", booking.id, slot_id)
        self._notify(notifications.send_new_booking_notification, self.booking_details(booking))
        return booking

    def attach_payment_intent(self, booking_id: int, payment_intent_id: str) -> Booking:
        booking = self.get_booking(booking_id)
        booking.payment_intent_id = payment_intent_id
        self.db.commit()
        self.db.refresh(booking)
        return booking

    def confirm_payment(self, booking_id: int, payment_intent_id: str | None = None) -> Booking:
        booking = self.get_booking(booking_id)
        if booking.status == STATUS_CONFIRMED:
            logger.info("Booking #%s already confirmed", booking_id)
            return booking
        if booking.status != STATUS_PENDING:
            logger.warning("Ignoring payment for booking #%s in status %s", booking_id, booking.status)
            return booking

        booking.status = STATUS_CONFIRMED
        booking.payment_status = PAYMENT_PAID
        if payment_intent_id:
            booking.payment_intent_id = payment_intent_id
        self.db.commit()
        self.db.refresh(booking)

        logger.info("Booking #%s confirmed", booking_id)
        self._notify(notifications.send_booking_confirmation, self.booking_details(booking))
        return booking

    def mark_completed(self, booking_id: int) -> Booking:
        booking = self.get_booking(booking_id)
        if booking.status != STATUS_CONFIRMED:
            raise Conflict("Only confirmed bookings can be marked completed.")

        booking.status = STATUS_COMPLETED
        self.db.commit()
        self.db.refresh(booking)

        self._notify(notifications.send_feedback_request, self.booking_details(booking))
        return booking

    def _check_modifiable(self, booking: Booking, now: datetime) -> None:
        if booking.status not in ACTIVE_STATUSES:
            raise Conflict("Only pending or confirmed bookings can be modified.")
        if not can_modify(booking, now):
            raise PolicyViolation(MODIFICATION_WINDOW_MESSAGE)

    def cancel(self, booking_id: int, now: datetime | None = None) -> Booking:
        now = now or datetime.now()
        booking = self.get_booking(booking_id)
        self._check_modifiable(booking, now)

        try:
            self.slots.release(booking.slot_id)
            booking.status = STATUS_CANCELLED
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info("Booking #%s cancelled", booking_id)
        self._notify(notifications.send_cancellation_confirmation, self.booking_details(booking))
        return booking

    def reschedule(self, booking_id: int, new_slot_id: int, now: datetime | None = None) -> Booking:
        now = now or datetime.now()
        booking = self.get_booking(booking_id)
        self._check_modifiable(booking, now)
        if new_slot_id == booking.slot_id:
            raise ValidationFailed("The booking is already in this slot.")

        old_start = booking.appointment_start
        old_time = booking.appointment_time
        try:
            new_slot = self.slots.get_slot(new_slot_id)
            if new_slot.doctor_id != booking.doctor_id:
                raise ValidationFailed("Bookings can only be moved to another slot with the same doctor.")
            new_start = slot_start(new_slot.date, new_slot.time)
            if new_start <= now:
                raise ValidationFailed("Appointments must be scheduled in the future.")

            self.slots.release(booking.slot_id)
            self.slots.reserve(new_slot_id)

            booking.slot_id = new_slot.id
            booking.appointment_date = new_slot.date
            booking.appointment_time = new_slot.time
            booking.appointment_start = new_start
            booking.reminders_sent = False
            booking.reschedule_count = (booking.reschedule_count or 0) + 1
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info("Booking #%s moved to slot #%s", booking_id, new_slot_id)
        self._notify(
            notifications.send_reschedule_confirmation,
            self.booking_details(booking),
            old_start,
            old_time,
        )
        return booking

"""24-hour appointment reminders.

``scan`` is a pure selection; ``run_reminder_scan`` dispatches email/SMS for
each selected booking and marks it sent. The ``reminders_sent`` flag checked
at selection time is the only dedupe, so the job is safe to re-run.
"""

import asyncio
import logging
from datetime import datetime, timedelta

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from herhealth.core.errors import NotFound
from herhealth.database import SessionLocal
from herhealth.models.booking import STATUS_CONFIRMED, Booking
from herhealth.models.doctor import DoctorProfile
from herhealth.models.user import User
from herhealth.services import notifications
from herhealth.services.notifications import BookingDetails

logger = logging.getLogger(__name__)

WINDOW_START = timedelta(hours=23)
WINDOW_END = timedelta(hours=25)


def scan(db: Session, now: datetime) -> list[Booking]:
    return (
        db.query(Booking)
        .filter(
            Booking.status == STATUS_CONFIRMED,
            Booking.reminders_sent.is_(False),
            Booking.appointment_start >= now + WINDOW_START,
            Booking.appointment_start <= now + WINDOW_END,
        )
        .order_by(Booking.appointment_start.asc())
        .all()
    )


def mark_reminders_sent(db: Session, booking_id: int) -> Booking:
    booking = db.get(Booking, booking_id)
    if booking is None:
        raise NotFound(f"Booking with id {booking_id} not found.")
    booking.reminders_sent = True
    db.commit()
    db.refresh(booking)
    return booking


def _due_booking_ids(db: Session, now: datetime) -> list[int]:
    return [booking.id for booking in scan(db, now)]


def _details_for(db: Session, booking_id: int) -> BookingDetails | None:
    booking = db.get(Booking, booking_id)
    if booking is None:
        return None
    doctor = db.get(DoctorProfile, booking.doctor_id)
    patient = db.get(User, booking.patient_id)
    if doctor is None or patient is None:
        return None
    return BookingDetails.from_records(booking, doctor, db.get(User, doctor.user_id), patient)


async def dispatch_reminders(db: Session, now: datetime) -> list[int]:
    """Send reminders for every booking due at ``now``; returns the ids marked sent.

    Database work runs in the threadpool so the scheduler's event loop stays free.
    """
    booking_ids = await run_in_threadpool(_due_booking_ids, db, now)
    if not booking_ids:
        logger.info("No bookings need reminders at this time")
        return []

    logger.info("Found %s booking(s) needing reminders", len(booking_ids))
    sent: list[int] = []
    for booking_id in booking_ids:
        try:
            details = await run_in_threadpool(_details_for, db, booking_id)
            if details is None:
                logger.error("Missing doctor or patient data for booking #%s", booking_id)
                continue

            await notifications.send_reminder_emails(details)
            if details.patient_phone:
                await notifications.send_sms_reminder(details)

            await run_in_threadpool(mark_reminders_sent, db, booking_id)
            sent.append(booking_id)
            logger.info("Reminders sent for booking #%s", booking_id)
        except Exception:
            await run_in_threadpool(db.rollback)
            logger.exception("Error sending reminders for booking #%s", booking_id)

    return sent


async def run_reminder_scan(now: datetime | None = None) -> list[int]:
    db = SessionLocal()
    try:
        return await dispatch_reminders(db, now or datetime.now())
    finally:
        db.close()


class ReminderScheduler:
    """Hourly reminder job; a run that starts while another is active is skipped."""

    def __init__(self, enabled: bool = True):
        self.enabled = enabled
        self._scheduler: AsyncIOScheduler | None = None
        self._lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None

    async def run_once(self, now: datetime | None = None) -> list[int] | None:
        if self._lock.locked():
            logger.warning("Reminder scan already in progress, skipping this run")
            return None

        async with self._lock:
            logger.info("Checking for bookings needing 24h reminders")
            try:
                return await run_reminder_scan(now)
            except Exception:
                logger.exception("Error in reminder scheduler")
                return []

    def start(self) -> None:
        if not self.enabled:
            logger.info("ReminderScheduler is disabled, skipping start")
            return
        if self._scheduler is not None:
            logger.warning("ReminderScheduler already running")
            return

        scheduler = AsyncIOScheduler()
        scheduler.add_job(
            self.run_once,
            CronTrigger(minute=0),
            id="appointment_reminders",
            name="24h Appointment Reminders",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.start()
        self._scheduler = scheduler
        logger.info("ReminderScheduler started - checking every hour for upcoming appointments")

    def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("ReminderScheduler stopped")

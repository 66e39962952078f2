"""Email (Resend) and SMS (Twilio) notifications.

Every sender is best-effort: a missing key or a provider failure is logged
and reported as ``False``, never raised, so booking state never depends on
notification delivery.
"""

import asyncio
import logging
from dataclasses import dataclass, replace
from datetime import datetime
from html import escape
from typing import Any, Callable, Protocol

import httpx
import resend
from fastapi import BackgroundTasks

from herhealth.core import config

logger = logging.getLogger(__name__)

CONSULTATION_MINUTES = 20

EMERGENCY_NOTICE = (
    '<div style="background: #fef2f2; border: 2px solid #fca5a5; padding: 20px; border-radius: 8px;">'
    '<p style="margin: 0; color: #dc2626; font-weight: bold;">HerHealth Hub is not an emergency service.<br>'
    "For urgent or life-threatening issues, call 999 or go to A&amp;E.</p></div>"
)


class Notifier(Protocol):
    def enqueue(self, func: Callable[..., Any], *args: Any) -> None:
        ...


class BackgroundNotifier:
    """Runs notification senders after the response has been sent."""

    def __init__(self, background_tasks: BackgroundTasks):
        self.background_tasks = background_tasks

    def enqueue(self, func: Callable[..., Any], *args: Any) -> None:
        self.background_tasks.add_task(func, *args)


@dataclass(frozen=True)
class BookingDetails:
    """Detached snapshot of a booking and both parties, safe to use after the session closes."""

    booking_id: int
    appointment_start: datetime
    appointment_time: str
    reason_for_consultation: str | None
    patient_phone: str | None
    meeting_url: str | None
    patient_email: str
    patient_first_name: str
    patient_last_name: str
    doctor_email: str | None
    doctor_name: str
    doctor_specialty: str
    doctor_qualifications: str

    @classmethod
    def from_records(cls, booking, doctor, doctor_user, patient) -> "BookingDetails":
        doctor_name = f"Dr. {doctor_user.first_name} {doctor_user.last_name}" if doctor_user else "your doctor"
        return cls(
            booking_id=booking.id,
            appointment_start=booking.appointment_start,
            appointment_time=booking.appointment_time,
            reason_for_consultation=booking.reason_for_consultation,
            patient_phone=booking.patient_phone,
            meeting_url=booking.meeting_url,
            patient_email=patient.email,
            patient_first_name=patient.first_name,
            patient_last_name=patient.last_name,
            doctor_email=doctor_user.email if doctor_user else None,
            doctor_name=doctor_name,
            doctor_specialty=doctor.specialty,
            doctor_qualifications=doctor.qualifications,
        )

    def escaped(self) -> "BookingDetails":
        """Copy with user-supplied text made safe for HTML bodies. Subjects and SMS use the raw values."""
        return replace(
            self,
            reason_for_consultation=escape(self.reason_for_consultation) if self.reason_for_consultation else None,
            meeting_url=escape(self.meeting_url) if self.meeting_url else None,
            patient_first_name=escape(self.patient_first_name),
            patient_last_name=escape(self.patient_last_name),
            doctor_name=escape(self.doctor_name),
            doctor_specialty=escape(self.doctor_specialty),
            doctor_qualifications=escape(self.doctor_qualifications),
        )

    @property
    def patient_name(self) -> str:
        return f"{self.patient_first_name} {self.patient_last_name}"

    @property
    def display_date(self) -> str:
        return format_display_date(self.appointment_start)


def format_display_date(value: datetime) -> str:
    return value.strftime("%A, %d %B %Y")


def _layout(title: str, greeting: str, body: str) -> str:
    return f"""
    <div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">
      <h2 style="color: #0891b2;">HerHealth Hub - {title}</h2>
      <p>Dear {greeting},</p>
      {body}
      <p>If you have any questions, please contact us at {config.SUPPORT_EMAIL}</p>
      <p>Best regards,<br>The HerHealth Hub Team</p>
    </div>
    """


def _appointment_block(details: BookingDetails, heading: str, include_reason: bool = False) -> str:
    reason = ""
    if include_reason and details.reason_for_consultation:
        reason = f"<p><strong>Reason:</strong> {details.reason_for_consultation}</p>"
    return f"""
      <div style="background: #f0f9ff; padding: 20px; border-radius: 8px; margin: 20px 0;">
        <h3 style="margin-top: 0; color: #0891b2;">{heading}</h3>
        <p><strong>Date:</strong> {details.display_date}</p>
        <p><strong>Time:</strong> {details.appointment_time}</p>
        <p><strong>Duration:</strong> {CONSULTATION_MINUTES} minutes</p>
        {reason}
        <p><strong>Meeting Link:</strong> <a href="{details.meeting_url}">{details.meeting_url}</a></p>
      </div>
    """


async def send_email(to: str | None, subject: str, html: str) -> bool:
    if not config.RESEND_API_KEY:
        logger.warning("Resend not configured - skipping email '%s'", subject)
        return False
    if not to:
        logger.warning("No recipient for email '%s'", subject)
        return False

    resend.api_key = config.RESEND_API_KEY
    params = {
        "from": config.EMAIL_FROM_ADDRESS,
        "to": [to],
        "subject": subject,
        "html": html,
    }
    try:
        await asyncio.wait_for(
            asyncio.to_thread(resend.Emails.send, params),
            timeout=config.EXTERNAL_TIMEOUT_SECONDS,
        )
    except Exception:
        logger.exception("Failed to send email '%s' to %s", subject, to)
        return False

    logger.info("Email '%s' sent to %s", subject, to)
    return True


async def send_sms(to: str | None, body: str) -> bool:
    if not (config.TWILIO_ACCOUNT_SID and config.TWILIO_AUTH_TOKEN and config.TWILIO_PHONE_NUMBER):
        logger.warning("Twilio not configured - skipping SMS")
        return False
    if not to:
        logger.warning("No phone number provided - skipping SMS")
        return False

    try:
        async with httpx.AsyncClient(timeout=config.EXTERNAL_TIMEOUT_SECONDS) as client:
            response = await client.post(
                f"https://api.twilio.com/2010-04-01/Accounts/{config.TWILIO_ACCOUNT_SID}/Messages.json",
                auth=(config.TWILIO_ACCOUNT_SID, config.TWILIO_AUTH_TOKEN),
                data={"To": to, "From": config.TWILIO_PHONE_NUMBER, "Body": body},
            )
    except httpx.HTTPError:
        logger.exception("Twilio request failed for %s", to)
        return False

    if response.status_code not in (200, 201):
        logger.error("Twilio API error %s for %s: %s", response.status_code, to, response.text)
        return False

    logger.info("SMS sent to %s", to)
    return True


async def send_new_booking_notification(details: BookingDetails) -> bool:
    page = details.escaped()
    html = _layout(
        "New Booking",
        page.doctor_name,
        f"<p>{page.patient_name} has requested a consultation. "
        f"It will be confirmed once payment is received.</p>"
        + _appointment_block(page, "Requested Appointment", include_reason=True),
    )
    subject = f"New Booking Request: {details.patient_name} - {details.display_date} at {details.appointment_time}"
    return await send_email(details.doctor_email, subject, html)


async def send_booking_confirmation(details: BookingDetails) -> bool:
    page = details.escaped()
    patient_html = _layout(
        "Booking Confirmation",
        page.patient_first_name,
        f"<p>Your consultation with {page.doctor_name} has been confirmed.</p>"
        + _appointment_block(page, "Appointment Details", include_reason=True)
        + EMERGENCY_NOTICE
        + "<p>We will send you a reminder 24 hours before your appointment.</p>",
    )
    doctor_html = _layout(
        "Booking Notification",
        page.doctor_name,
        f"<p>You have a new confirmed booking with {page.patient_name}.</p>"
        + _appointment_block(page, "Appointment Details")
        + "<p>Please be available 5 minutes before the scheduled time.</p>",
    )
    patient_sent = await send_email(
        details.patient_email,
        f"Booking Confirmed: {details.doctor_name} - {details.display_date} at {details.appointment_time}",
        patient_html,
    )
    doctor_sent = await send_email(
        details.doctor_email,
        f"New Booking: {details.patient_name} - {details.display_date} at {details.appointment_time}",
        doctor_html,
    )
    return patient_sent and doctor_sent


async def send_reminder_emails(details: BookingDetails) -> bool:
    page = details.escaped()
    patient_html = _layout(
        "Appointment Reminder",
        page.patient_first_name,
        "<p>This is a reminder that you have a consultation scheduled for tomorrow.</p>"
        + _appointment_block(page, "Tomorrow's Appointment")
        + "<p>Please join the meeting 5 minutes before the scheduled time.</p>",
    )
    doctor_html = _layout(
        "Appointment Reminder",
        page.doctor_name,
        f"<p>This is a reminder of your consultation with {page.patient_name} tomorrow.</p>"
        + _appointment_block(page, "Tomorrow's Appointment"),
    )
    patient_sent = await send_email(
        details.patient_email,
        f"Reminder: Your consultation tomorrow at {details.appointment_time}",
        patient_html,
    )
    doctor_sent = await send_email(
        details.doctor_email,
        f"Reminder: Your consultation with {details.patient_first_name} at {details.appointment_time}",
        doctor_html,
    )
    return patient_sent and doctor_sent


async def send_sms_reminder(details: BookingDetails) -> bool:
    body = (
        f"HerHealth Hub Reminder: Your consultation is tomorrow {details.display_date} at "
        f"{details.appointment_time}. Meeting link: {details.meeting_url}. "
        "Join 5 minutes early. Reply STOP to opt out."
    )
    return await send_sms(details.patient_phone, body)


async def send_reschedule_confirmation(details: BookingDetails, old_start: datetime, old_time: str) -> bool:
    page = details.escaped()
    old_date = format_display_date(old_start)
    moved = (
        f"<p><strong>Previous time:</strong> {old_date} at {escape(old_time)}</p>"
        + _appointment_block(page, "New Appointment Time")
    )
    patient_sent = await send_email(
        details.patient_email,
        f"Appointment Rescheduled - {details.display_date} at {details.appointment_time}",
        _layout("Appointment Rescheduled", page.patient_first_name,
                f"<p>Your consultation with {page.doctor_name} has been rescheduled.</p>" + moved),
    )
    doctor_sent = await send_email(
        details.doctor_email,
        f"Patient Rescheduled: {details.patient_name} - {details.display_date} at {details.appointment_time}",
        _layout("Appointment Rescheduled", page.doctor_name,
                f"<p>{page.patient_name} has rescheduled their consultation.</p>" + moved),
    )
    return patient_sent and doctor_sent


async def send_cancellation_confirmation(details: BookingDetails) -> bool:
    page = details.escaped()
    cancelled = (
        '<div style="background: #fef2f2; padding: 20px; border-radius: 8px; margin: 20px 0;">'
        f"<p><strong>Date:</strong> {page.display_date}</p>"
        f"<p><strong>Time:</strong> {page.appointment_time}</p></div>"
    )
    patient_sent = await send_email(
        details.patient_email,
        f"Appointment Cancelled - {details.display_date} at {details.appointment_time}",
        _layout("Appointment Cancelled", page.patient_first_name,
                f"<p>Your consultation with {page.doctor_name} has been cancelled.</p>" + cancelled),
    )
    doctor_sent = await send_email(
        details.doctor_email,
        f"Appointment Cancelled: {details.patient_name} - {details.display_date} at {details.appointment_time}",
        _layout("Appointment Cancelled", page.doctor_name,
                f"<p>{page.patient_name} has cancelled their consultation. "
                "The slot is available for booking again.</p>" + cancelled),
    )
    return patient_sent and doctor_sent


async def send_feedback_request(details: BookingDetails) -> bool:
    page = details.escaped()
    feedback_url = f"{config.APP_URL}/feedback/{details.booking_id}"
    html = _layout(
        "Share Your Experience",
        page.patient_first_name,
        "<p>We hope your consultation was helpful. Your feedback helps other women find the right specialist.</p>"
        f"<p><strong>Doctor:</strong> {page.doctor_name} ({page.doctor_specialty})</p>"
        f'<p style="text-align: center;"><a href="{feedback_url}" '
        'style="background-color: #0891b2; color: white; padding: 15px 30px; text-decoration: none; '
        'border-radius: 8px;">Share Your Experience</a></p>',
    )
    return await send_email(details.patient_email, "How was your consultation? Share your experience", html)


async def send_doctor_invite(email: str, invite_url: str, expires_at: datetime) -> bool:
    html = _layout(
        "Doctor Invitation",
        "Doctor",
        "<p>You have been invited to join HerHealth Hub as a consulting doctor.</p>"
        f'<p><a href="{invite_url}">Complete your profile</a></p>'
        f"<p>This link can be used once and expires on {format_display_date(expires_at)}.</p>",
    )
    return await send_email(email, "You're invited to join HerHealth Hub", html)

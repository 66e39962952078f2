import json
import re
from datetime import date, datetime
from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from herhealth.core.errors import BookingError
from herhealth.database import get_db
from herhealth.routes.common import PHONE_PATTERN, database_unavailable, normalize_email, to_http_exception
from herhealth.services import ai_summary
from herhealth.services.booking_service import (
    JOIN_CLOSES_AFTER,
    JOIN_OPENS_BEFORE,
    BookingLifecycleManager,
    can_join,
    can_modify,
)
from herhealth.services.notifications import BackgroundNotifier

router = APIRouter(tags=['bookings'])

MAX_REASON_LENGTH = 1000


class CreateBookingRequest(BaseModel):
    slot_id: int
    email: str
    first_name: str
    last_name: str
    reason_for_consultation: str | None = None
    patient_phone: str | None = None

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)

    @field_validator('first_name', 'last_name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Name is required.')
        return normalized

    @field_validator('reason_for_consultation')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_REASON_LENGTH:
            raise ValueError(f'Reason must be {MAX_REASON_LENGTH} characters or fewer.')

        return normalized

    @field_validator('patient_phone')
    @classmethod
    def validate_phone(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        normalized = value.replace(' ', '').strip()
        if not re.fullmatch(PHONE_PATTERN, normalized):
            raise ValueError('Phone number must be in E.164 format (e.g. +447700900123).')
        return normalized


class RescheduleBookingRequest(BaseModel):
    new_slot_id: int


class BookingResponse(BaseModel):
    id: int
    patient_id: int
    doctor_id: int
    slot_id: int
    appointment_date: date
    appointment_time: str
    appointment_start: datetime
    reason_for_consultation: str | None = None
    patient_phone: str | None = None
    status: str
    payment_status: str
    payment_intent_id: str | None = None
    reminders_sent: bool
    reschedule_count: int
    meeting_url: str | None = None

    class Config:
        from_attributes = True


class BookingDetailResponse(BookingResponse):
    can_modify: bool
    can_join: bool


class JoinEligibilityResponse(BaseModel):
    booking_id: int
    can_join: bool
    opens_at: datetime
    closes_at: datetime
    meeting_url: str | None = None


class QuestionnaireAnswers(BaseModel):
    age: str
    primary_symptoms: str
    symptom_onset: str
    symptom_severity: str
    current_medications: str = ''
    allergies: str = ''
    previous_treatments: str = ''
    additional_concerns: str = ''


class QuestionnaireRequest(BaseModel):
    booking_id: int
    answers: QuestionnaireAnswers


class SymptomSummaryResponse(BaseModel):
    booking_id: int
    symptom_data: dict[str, Any] | None = None
    symptom_summary: str | None = None


class IntakeRequest(BaseModel):
    answers: dict[str, Any]
    booking_id: int | None = None

    @field_validator('answers')
    @classmethod
    def validate_answers(cls, value: dict[str, Any]) -> dict[str, Any]:
        if not value:
            raise ValueError('At least one intake answer is required.')
        return value


class IntakeSummaryResponse(BaseModel):
    booking_id: int | None = None
    summary: str | None = None
    recommendation: str | None = None
    priority: str | None = None


def booking_detail(booking, now: datetime) -> BookingDetailResponse:
    return BookingDetailResponse(
        **BookingResponse.model_validate(booking).model_dump(),
        can_modify=can_modify(booking, now),
        can_join=can_join(booking, now),
    )


@router.post('/bookings', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: CreateBookingRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    manager = BookingLifecycleManager(db, BackgroundNotifier(background_tasks))

    try:
        patient = manager.get_or_create_patient(data.email, data.first_name, data.last_name)
        return manager.create_booking(
            slot_id=data.slot_id,
            patient=patient,
            reason_for_consultation=data.reason_for_consultation,
            patient_phone=data.patient_phone,
        )
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/bookings/user/{email}', response_model=list[BookingDetailResponse])
def list_patient_bookings(email: str, db: Session = Depends(get_db)):
    if not email.strip():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Email is required.')

    try:
        bookings = BookingLifecycleManager(db).list_for_patient(email)
        now = datetime.now()
        return [booking_detail(booking, now) for booking in bookings]
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/bookings/{booking_id}', response_model=BookingDetailResponse)
def get_booking(booking_id: int, db: Session = Depends(get_db)):
    try:
        booking = BookingLifecycleManager(db).get_booking(booking_id)
        return booking_detail(booking, datetime.now())
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/bookings/{booking_id}/reschedule', response_model=BookingResponse)
def reschedule_booking(
    booking_id: int,
    data: RescheduleBookingRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    manager = BookingLifecycleManager(db, BackgroundNotifier(background_tasks))

    try:
        return manager.reschedule(booking_id, data.new_slot_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/bookings/{booking_id}/cancel', response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    manager = BookingLifecycleManager(db, BackgroundNotifier(background_tasks))

    try:
        return manager.cancel(booking_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/bookings/{booking_id}/complete', response_model=BookingResponse)
def complete_booking(
    booking_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    manager = BookingLifecycleManager(db, BackgroundNotifier(background_tasks))

    try:
        return manager.mark_completed(booking_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/bookings/{booking_id}/join', response_model=JoinEligibilityResponse)
def get_join_eligibility(booking_id: int, db: Session = Depends(get_db)):
    try:
        booking = BookingLifecycleManager(db).get_booking(booking_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    joinable = can_join(booking, datetime.now())
    return JoinEligibilityResponse(
        booking_id=booking.id,
        can_join=joinable,
        opens_at=booking.appointment_start - JOIN_OPENS_BEFORE,
        closes_at=booking.appointment_start + JOIN_CLOSES_AFTER,
        meeting_url=booking.meeting_url if joinable else None,
    )


@router.post('/questionnaire', response_model=SymptomSummaryResponse)
def submit_questionnaire(data: QuestionnaireRequest, db: Session = Depends(get_db)):
    try:
        booking = BookingLifecycleManager(db).get_booking(data.booking_id)
        answers = data.answers.model_dump()
        summary = ai_summary.generate_symptom_summary(answers)

        booking.symptom_data = json.dumps(answers)
        booking.symptom_summary = summary
        db.commit()

        return SymptomSummaryResponse(booking_id=booking.id, symptom_data=answers, symptom_summary=summary)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/bookings/{booking_id}/symptoms', response_model=SymptomSummaryResponse)
def get_symptom_summary(booking_id: int, db: Session = Depends(get_db)):
    try:
        booking = BookingLifecycleManager(db).get_booking(booking_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if not booking.symptom_summary:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='No symptom summary for this booking.')

    return SymptomSummaryResponse(
        booking_id=booking.id,
        symptom_data=json.loads(booking.symptom_data) if booking.symptom_data else None,
        symptom_summary=booking.symptom_summary,
    )


@router.post('/intake', response_model=IntakeSummaryResponse)
def submit_intake(data: IntakeRequest, db: Session = Depends(get_db)):
    try:
        booking = None
        if data.booking_id is not None:
            booking = BookingLifecycleManager(db).get_booking(data.booking_id)

        result = ai_summary.generate_intake_summary(data.answers)

        if booking is not None:
            booking.intake_summary = result['summary']
            booking.intake_recommendation = result['recommendation']
            booking.intake_priority = result['priority']
            db.commit()

        return IntakeSummaryResponse(booking_id=data.booking_id, **result)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/bookings/{booking_id}/intake', response_model=IntakeSummaryResponse)
def get_intake_summary(booking_id: int, db: Session = Depends(get_db)):
    try:
        booking = BookingLifecycleManager(db).get_booking(booking_id)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if not booking.intake_summary:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='No intake assessment for this booking.')

    return IntakeSummaryResponse(
        booking_id=booking.id,
        summary=booking.intake_summary,
        recommendation=booking.intake_recommendation,
        priority=booking.intake_priority,
    )

import re
from datetime import date, datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from herhealth.auth.dependencies import require_admin
from herhealth.core.errors import BookingError
from herhealth.database import get_db
from herhealth.models.doctor import DoctorProfile
from herhealth.models.user import User
from herhealth.routes.booking_routes import BookingResponse
from herhealth.routes.common import database_unavailable, normalize_email, to_http_exception
from herhealth.services import onboarding, payments
from herhealth.services.booking_service import BookingLifecycleManager
from herhealth.services.feedback import get_doctor_rating
from herhealth.services.notifications import BackgroundNotifier
from herhealth.services.slot_registry import SlotRegistry

router = APIRouter(tags=['doctors'])

TIME_PATTERN = r'^([01]\d|2[0-3]):[0-5]\d$'
MAX_SLOT_DAYS = 90


def _validate_slot_time(value: str) -> str:
    normalized = value.strip()
    if not re.fullmatch(TIME_PATTERN, normalized):
        raise ValueError('Time must be in HH:MM format.')
    return normalized


class DoctorResponse(BaseModel):
    id: int
    user_id: int
    first_name: str
    last_name: str
    specialty: str
    qualifications: str
    experience: str
    bio: str | None = None
    profile_image: str | None = None


class SlotResponse(BaseModel):
    id: int
    doctor_id: int
    date: date
    time: str
    is_available: bool

    class Config:
        from_attributes = True


class CreateSlotRequest(BaseModel):
    date: date
    time: str

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _validate_slot_time(value)


class RatingResponse(BaseModel):
    doctor_id: int
    average_rating: float
    total_feedbacks: int


class CreateInviteRequest(BaseModel):
    email: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, value: str) -> str:
        return normalize_email(value)


class InviteResponse(BaseModel):
    email: str
    invite_url: str
    expires_at: datetime


class InviteStatusResponse(BaseModel):
    valid: bool
    email: str
    expires_at: datetime


class OnboardingSlot(BaseModel):
    date: date
    time: str

    @field_validator('time')
    @classmethod
    def validate_time(cls, value: str) -> str:
        return _validate_slot_time(value)


class CompleteOnboardingRequest(BaseModel):
    token: str
    first_name: str
    last_name: str
    specialty: str
    qualifications: str
    experience: str
    bio: str | None = None
    profile_image: str | None = None
    slots: list[OnboardingSlot] = []

    @field_validator('token', 'first_name', 'last_name', 'specialty', 'qualifications', 'experience')
    @classmethod
    def validate_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized


class StripeAccountRequest(BaseModel):
    doctor_id: int


class StripeAccountResponse(BaseModel):
    account_id: str
    url: str


class StripeStatusResponse(BaseModel):
    connected: bool
    charges_enabled: bool
    payouts_enabled: bool
    details_submitted: bool


def doctor_response(doctor: DoctorProfile, user: User | None) -> DoctorResponse:
    return DoctorResponse(
        id=doctor.id,
        user_id=doctor.user_id,
        first_name=user.first_name if user else '',
        last_name=user.last_name if user else '',
        specialty=doctor.specialty,
        qualifications=doctor.qualifications,
        experience=doctor.experience,
        bio=doctor.bio,
        profile_image=doctor.profile_image,
    )


def get_doctor_or_404(db: Session, doctor_id: int) -> DoctorProfile:
    doctor = db.get(DoctorProfile, doctor_id)
    if doctor is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail='Doctor not found.')
    return doctor


@router.get('/doctors', response_model=list[DoctorResponse])
def list_doctors(specialty: str | None = None, db: Session = Depends(get_db)):
    try:
        query = db.query(DoctorProfile, User).join(User, User.id == DoctorProfile.user_id)
        if specialty and specialty.strip():
            query = query.filter(DoctorProfile.specialty == specialty.strip())
        rows = query.order_by(DoctorProfile.id.asc()).all()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return [doctor_response(doctor, user) for doctor, user in rows]


@router.get('/doctors/{doctor_id}', response_model=DoctorResponse)
def get_doctor(doctor_id: int, db: Session = Depends(get_db)):
    try:
        doctor = get_doctor_or_404(db, doctor_id)
        return doctor_response(doctor, db.get(User, doctor.user_id))
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/slots', response_model=list[SlotResponse])
def list_available_slots(
    doctor_id: int,
    days: int | None = Query(default=None, ge=1, le=MAX_SLOT_DAYS),
    db: Session = Depends(get_db),
):
    try:
        get_doctor_or_404(db, doctor_id)
        return SlotRegistry(db).get_available_slots(doctor_id, days=days)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/doctors/{doctor_id}/slots', response_model=SlotResponse, status_code=status.HTTP_201_CREATED)
def create_slot(doctor_id: int, data: CreateSlotRequest, db: Session = Depends(get_db)):
    if data.date < date.today():
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Slots cannot be created in the past.')

    try:
        get_doctor_or_404(db, doctor_id)
        slot = SlotRegistry(db).create_slot(doctor_id, data.date, data.time)
        db.commit()
        db.refresh(slot)
        return slot
    except BookingError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/rating', response_model=RatingResponse)
def get_rating(doctor_id: int, db: Session = Depends(get_db)):
    try:
        get_doctor_or_404(db, doctor_id)
        return RatingResponse(doctor_id=doctor_id, **get_doctor_rating(db, doctor_id))
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctors/{doctor_id}/bookings', response_model=list[BookingResponse])
def list_doctor_bookings(doctor_id: int, db: Session = Depends(get_db)):
    try:
        get_doctor_or_404(db, doctor_id)
        return BookingLifecycleManager(db).list_for_doctor(doctor_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/doctor/invite', response_model=InviteResponse, status_code=status.HTTP_201_CREATED)
def create_doctor_invite(
    data: CreateInviteRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    _admin: dict = Depends(require_admin),
):
    try:
        invite = onboarding.create_invite(db, data.email, BackgroundNotifier(background_tasks))
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return InviteResponse(
        email=invite.email,
        invite_url=onboarding.invite_url_for(invite.token),
        expires_at=invite.expires_at,
    )


@router.get('/doctor/invite/{token}', response_model=InviteStatusResponse)
def validate_doctor_invite(token: str, db: Session = Depends(get_db)):
    try:
        invite = onboarding.get_valid_invite(db, token)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return InviteStatusResponse(valid=True, email=invite.email, expires_at=invite.expires_at)


@router.post('/doctor/complete', response_model=DoctorResponse, status_code=status.HTTP_201_CREATED)
def complete_doctor_onboarding(data: CompleteOnboardingRequest, db: Session = Depends(get_db)):
    profile = onboarding.DoctorOnboarding(
        first_name=data.first_name,
        last_name=data.last_name,
        specialty=data.specialty,
        qualifications=data.qualifications,
        experience=data.experience,
        bio=data.bio,
        profile_image=data.profile_image,
        slots=[(slot.date, slot.time) for slot in data.slots],
    )

    try:
        doctor = onboarding.complete_onboarding(db, data.token, profile)
        return doctor_response(doctor, db.get(User, doctor.user_id))
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/doctor/stripe-account', response_model=StripeAccountResponse)
def create_stripe_account(data: StripeAccountRequest, db: Session = Depends(get_db)):
    try:
        doctor = get_doctor_or_404(db, data.doctor_id)
        user = db.get(User, doctor.user_id)
        account_id, url = payments.create_connect_account(doctor, user.email if user else '')
        doctor.stripe_account_id = account_id
        db.commit()
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return StripeAccountResponse(account_id=account_id, url=url)


@router.get('/doctor/{doctor_id}/stripe-status', response_model=StripeStatusResponse)
def get_stripe_status(doctor_id: int, db: Session = Depends(get_db)):
    try:
        doctor = get_doctor_or_404(db, doctor_id)
        return StripeStatusResponse(**payments.get_connect_status(doctor))
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

"""Doctor invites and invite-gated onboarding."""

import logging
import secrets
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from sqlalchemy import update
from sqlalchemy.orm import Session

from herhealth.core import config
from herhealth.core.errors import Conflict, NotFound
from herhealth.models.doctor import DoctorProfile
from herhealth.models.invite import DoctorInvite
from herhealth.models.user import User
from herhealth.services import notifications
from herhealth.services.notifications import Notifier
from herhealth.services.slot_registry import SlotRegistry

logger = logging.getLogger(__name__)


@dataclass
class DoctorOnboarding:
    first_name: str
    last_name: str
    specialty: str
    qualifications: str
    experience: str
    bio: str | None = None
    profile_image: str | None = None
    slots: list[tuple[date, str]] = field(default_factory=list)


def invite_url_for(token: str) -> str:
    return f"{config.FRONTEND_URL}/invite/{token}"


def create_invite(db: Session, email: str, notifier: Notifier, now: datetime | None = None) -> DoctorInvite:
    now = now or datetime.now()
    invite = DoctorInvite(
        email=email.strip().lower(),
        token=secrets.token_urlsafe(32),
        is_used=False,
        expires_at=now + timedelta(days=config.INVITE_EXPIRY_DAYS),
    )
    db.add(invite)
    db.commit()
    db.refresh(invite)

    logger.info("Doctor invite #%s created for %s", invite.id, invite.email)
    notifier.enqueue(notifications.send_doctor_invite, invite.email, invite_url_for(invite.token), invite.expires_at)
    return invite


def get_valid_invite(db: Session, token: str, now: datetime | None = None) -> DoctorInvite:
    now = now or datetime.now()
    invite = db.query(DoctorInvite).filter(DoctorInvite.token == token).first()
    if invite is None:
        raise NotFound("Invite not found.")
    if invite.is_used:
        raise Conflict("This invite has already been used.")
    if invite.expires_at <= now:
        raise Conflict("This invite has expired.")
    return invite


def complete_onboarding(db: Session, token: str, profile: DoctorOnboarding, now: datetime | None = None) -> DoctorProfile:
    """Redeem an invite once and create the doctor's account, profile and slots."""
    now = now or datetime.now()
    invite = get_valid_invite(db, token, now)

    try:
        redeemed = db.execute(
            update(DoctorInvite)
            .where(
                DoctorInvite.id == invite.id,
                DoctorInvite.is_used.is_(False),
                DoctorInvite.expires_at > now,
            )
            .values(is_used=True)
            .execution_options(synchronize_session=False)
        )
        if redeemed.rowcount != 1:
            raise Conflict("This invite has already been used.")

        user = db.query(User).filter(User.email == invite.email).first()
        if user is None:
            user = User(email=invite.email, first_name=profile.first_name, last_name=profile.last_name)
            db.add(user)
        elif db.query(DoctorProfile).filter(DoctorProfile.user_id == user.id).first() is not None:
            raise Conflict("A doctor profile already exists for this email.")
        user.first_name = profile.first_name
        user.last_name = profile.last_name
        user.is_doctor = True
        db.flush()

        doctor = DoctorProfile(
            user_id=user.id,
            specialty=profile.specialty,
            qualifications=profile.qualifications,
            experience=profile.experience,
            bio=profile.bio,
            profile_image=profile.profile_image,
        )
        db.add(doctor)
        db.flush()

        registry = SlotRegistry(db)
        for slot_date, slot_time in sorted(set(profile.slots)):
            registry.create_slot(doctor.id, slot_date, slot_time)

        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(doctor)
    logger.info("Doctor #%s onboarded from invite #%s", doctor.id, invite.id)
    return doctor


def cleanup_expired_invites(db: Session, now: datetime | None = None) -> int:
    now = now or datetime.now()
    removed = db.query(DoctorInvite).filter(
        DoctorInvite.expires_at < now,
        DoctorInvite.is_used.is_(False),
    ).delete(synchronize_session=False)
    db.commit()
    return removed

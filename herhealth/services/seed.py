"""Sample doctors and a week of slots for local development."""

import logging
from datetime import date, timedelta

from sqlalchemy.orm import Session

from herhealth.models.doctor import DoctorProfile
from herhealth.models.user import User
from herhealth.services.slot_registry import SlotRegistry

logger = logging.getLogger(__name__)

SEED_SLOT_TIMES = ("09:00", "10:30", "14:00", "15:30")
SEED_DAYS = 7

SAMPLE_DOCTORS = (
    {
        "email": "sarah.johnson@herhealth.com",
        "first_name": "Sarah",
        "last_name": "Johnson",
        "specialty": "General Practice",
        "qualifications": "MB ChB, MRCGP",
        "experience": "8 years experience",
        "bio": "Specializing in women's health and general practice with a focus on preventive care.",
    },
    {
        "email": "emily.chen@herhealth.com",
        "first_name": "Emily",
        "last_name": "Chen",
        "specialty": "Women's Health",
        "qualifications": "MD, FACOG",
        "experience": "12 years experience",
        "bio": "Board-certified gynecologist specializing in reproductive health and hormonal disorders.",
    },
    {
        "email": "rebecca.martinez@herhealth.com",
        "first_name": "Rebecca",
        "last_name": "Martinez",
        "specialty": "Mental Health",
        "qualifications": "PhD, LMFT",
        "experience": "15 years experience",
        "bio": "Licensed therapist specializing in women's mental health and wellness.",
    },
)


def seed_sample_data(db: Session, today: date | None = None) -> int:
    """Create the sample doctors once; returns how many were created."""
    today = today or date.today()
    if db.query(DoctorProfile).first() is not None:
        return 0

    registry = SlotRegistry(db)
    for sample in SAMPLE_DOCTORS:
        user = User(
            email=sample["email"],
            first_name=sample["first_name"],
            last_name=sample["last_name"],
            is_doctor=True,
        )
        db.add(user)
        db.flush()

        doctor = DoctorProfile(
            user_id=user.id,
            specialty=sample["specialty"],
            qualifications=sample["qualifications"],
            experience=sample["experience"],
            bio=sample["bio"],
        )
        db.add(doctor)
        db.flush()

        for offset in range(SEED_DAYS):
            for slot_time in SEED_SLOT_TIMES:
                registry.create_slot(doctor.id, today + timedelta(days=offset), slot_time)

    db.commit()
    logger.info("Seeded %s sample doctors", len(SAMPLE_DOCTORS))
    return len(SAMPLE_DOCTORS)

import os
from datetime import date, datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')
os.environ.setdefault('SEED_SAMPLE_DATA', 'false')
os.environ.setdefault('REMINDER_SCHEDULER_ENABLED', 'false')
os.environ.setdefault('JWT_SECRET_KEY', 'test-only-jwt-secret-key-0123456789abcdef')

from herhealth.database import Base  # noqa: E402
from herhealth.models import booking, doctor, feedback, invite, slot, user  # noqa: E402,F401
from herhealth.models.doctor import DoctorProfile  # noqa: E402
from herhealth.models.slot import Slot  # noqa: E402
from herhealth.models.user import User  # noqa: E402


class RecordingNotifier:
    def __init__(self):
        self.calls = []

    def enqueue(self, func, *args) -> None:
        self.calls.append((func.__name__, args))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def db_session():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


def add_doctor(db, email: str = 'sarah.johnson@herhealth.com', specialty: str = 'General Practice') -> DoctorProfile:
    doctor_user = User(email=email, first_name='Sarah', last_name='Johnson', is_doctor=True)
    db.add(doctor_user)
    db.flush()

    profile = DoctorProfile(
        user_id=doctor_user.id,
        specialty=specialty,
        qualifications='MB ChB, MRCGP',
        experience='8 years experience',
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def add_slot(db, doctor_id: int, slot_date: date, slot_time: str = '09:00', is_available: bool = True) -> Slot:
    new_slot = Slot(doctor_id=doctor_id, date=slot_date, time=slot_time, is_available=is_available)
    db.add(new_slot)
    db.commit()
    db.refresh(new_slot)
    return new_slot


def add_patient(db, email: str = 'patient@example.com', phone: str | None = None) -> User:
    patient = User(email=email, first_name='Jane', last_name='Doe', phone=phone)
    db.add(patient)
    db.commit()
    db.refresh(patient)
    return patient


@pytest.fixture
def doctor_profile(db_session) -> DoctorProfile:
    return add_doctor(db_session)


@pytest.fixture
def patient(db_session) -> User:
    return add_patient(db_session)


@pytest.fixture
def fixed_now() -> datetime:
    return datetime(2026, 3, 2, 9, 0)

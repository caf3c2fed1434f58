import os
from datetime import date, time
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from telemed.core.config import SchedulingConfig  # noqa: E402
from telemed.database import Base  # noqa: E402
from telemed.models.appointment import Appointment  # noqa: E402,F401
from telemed.models.doctor import Doctor, Patient  # noqa: E402
from telemed.models.feedback import Feedback  # noqa: E402,F401
from telemed.models.invoice import Invoice  # noqa: E402,F401
from telemed.models.prescription import Prescription  # noqa: E402,F401
from telemed.models.schedule import DoctorSchedule  # noqa: E402
from telemed.models.user import User  # noqa: E402


@pytest.fixture
def settings() -> SchedulingConfig:
    return SchedulingConfig(timezone_name='Asia/Dhaka', fallback_offset_minutes=360)


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


def make_user(db, email: str, role: str, full_name: str | None = None) -> User:
    user = User(email=email, role=role, full_name=full_name or email.split('@')[0].title(), hashed_password='')
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def admin_user(db) -> User:
    return make_user(db, 'admin@telemed.test', 'admin', 'Site Admin')


@pytest.fixture
def doctor_user(db) -> User:
    return make_user(db, 'house@telemed.test', 'doctor', 'Gregory House')


@pytest.fixture
def doctor(db, doctor_user) -> Doctor:
    profile = Doctor(
        user_id=doctor_user.id,
        specialization='Diagnostics',
        consultation_fee=Decimal('500.00'),
        is_approved=True,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def patient_user(db) -> User:
    return make_user(db, 'patient@telemed.test', 'patient', 'Pat Patient')


@pytest.fixture
def patient(db, patient_user) -> Patient:
    profile = Patient(user_id=patient_user.id)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


@pytest.fixture
def other_patient_user(db) -> User:
    return make_user(db, 'someone@telemed.test', 'patient', 'Someone Else')


@pytest.fixture
def other_patient(db, other_patient_user) -> Patient:
    profile = Patient(user_id=other_patient_user.id)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def make_schedule(
    db,
    doctor: Doctor,
    day: date = date(2024, 6, 1),
    start: time = time(9, 0),
    end: time = time(10, 0),
    max_patients: int = 6,
    video_call_link: str | None = 'https://meet.example.com/room',
    is_approved: bool = True,
) -> DoctorSchedule:
    schedule = DoctorSchedule(
        doctor_id=doctor.id,
        date=day,
        start_time=start,
        end_time=end,
        max_patients_per_day=max_patients,
        video_call_link=video_call_link,
        is_approved=is_approved,
    )
    db.add(schedule)
    db.commit()
    db.refresh(schedule)
    return schedule


@pytest.fixture
def schedule_factory(db, doctor):
    def factory(**kwargs) -> DoctorSchedule:
        return make_schedule(db, doctor, **kwargs)

    return factory


@pytest.fixture
def other_doctor_user(db) -> User:
    return make_user(db, 'wilson@telemed.test', 'doctor', 'James Wilson')


@pytest.fixture
def other_doctor(db, other_doctor_user) -> Doctor:
    profile = Doctor(
        user_id=other_doctor_user.id,
        specialization='Oncology',
        consultation_fee=Decimal('350.00'),
        is_approved=True,
    )
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile

from datetime import date, datetime, time
from decimal import Decimal

import pytest

from telemed.models.doctor import Doctor
from telemed.models.schedule import DoctorSchedule
from telemed.models.user import User
from telemed.scheduling.errors import ConflictError, NotFoundError
from telemed.services import appointments, doctors


@pytest.fixture
def applicant(db) -> Doctor:
    user = User(email='cuddy@telemed.test', role='doctor', full_name='Lisa Cuddy', hashed_password='')
    db.add(user)
    db.commit()

    profile = Doctor(user_id=user.id, specialization='Endocrinology', consultation_fee=Decimal('400.00'), is_approved=False)
    db.add(profile)
    db.commit()
    db.refresh(profile)
    return profile


def test_pending_doctors_lists_only_unapproved_profiles(db, doctor, applicant) -> None:
    assert [pending.id for pending in doctors.list_pending_doctors(db)] == [applicant.id]


def test_unapproved_doctor_is_not_bookable(db, doctor, applicant) -> None:
    assert [summary.doctor_id for summary in doctors.list_bookable_doctors(db)] == [doctor.id]


def test_approved_doctor_becomes_bookable(db, doctor, applicant) -> None:
    approved = doctors.approve_doctor(db, applicant.id)

    assert approved.is_approved is True
    assert [summary.doctor_id for summary in doctors.list_bookable_doctors(db)] == [doctor.id, applicant.id]
    assert doctors.list_pending_doctors(db) == []


def test_reject_doctor_removes_profile_and_schedules(db, applicant) -> None:
    db.add(DoctorSchedule(
        doctor_id=applicant.id,
        date=date(2024, 6, 1),
        start_time=time(9, 0),
        end_time=time(10, 0),
        max_patients_per_day=6,
    ))
    db.commit()

    doctors.reject_doctor(db, applicant.id)

    with pytest.raises(NotFoundError):
        doctors.get_doctor(db, applicant.id)
    assert db.query(DoctorSchedule).filter(DoctorSchedule.doctor_id == applicant.id).count() == 0


def test_doctor_with_appointments_cannot_be_rejected(db, settings, doctor, patient, schedule_factory) -> None:
    schedule_factory()
    appointments.book_appointment(db, settings, patient, doctor.id, datetime(2024, 6, 1, 9, 0))

    with pytest.raises(ConflictError) as exception_info:
        doctors.reject_doctor(db, doctor.id)

    assert exception_info.value.message == 'Cannot reject a doctor who already has appointments.'
    assert doctors.get_doctor(db, doctor.id).id == doctor.id


def test_approving_unknown_doctor_is_reported(db) -> None:
    with pytest.raises(NotFoundError):
        doctors.approve_doctor(db, 999)

from datetime import date, datetime, time

import pytest
from fastapi import HTTPException
from pydantic import ValidationError

from telemed.routes import schedule_routes
from telemed.routes.schedule_routes import (
    CreateScheduleRequest,
    EditScheduleRequest,
    create_schedules,
    delete_schedule,
    edit_schedule,
    list_available_slots,
    list_my_schedules,
)
from telemed.services import appointments


@pytest.fixture(autouse=True)
def skip_schema_checks(monkeypatch) -> None:
    monkeypatch.setattr(schedule_routes, 'ensure_database_ready', lambda: None)


def schedule_request(**overrides) -> CreateScheduleRequest:
    values = {
        'start_date': date(2024, 6, 1),
        'end_date': date(2024, 6, 2),
        'start_time': time(9, 0),
        'end_time': time(10, 0),
        'max_patients_per_day': 6,
        'video_call_link': ' https://meet.example.com/house ',
    }
    values.update(overrides)
    return CreateScheduleRequest(**values)


def test_create_schedule_request_normalizes_video_link() -> None:
    assert schedule_request().video_call_link == 'https://meet.example.com/house'
    assert schedule_request(video_call_link='   ').video_call_link is None


@pytest.mark.parametrize('link', ['ftp://meet.example.com/room', 'https://' + 'a' * 500])
def test_create_schedule_request_rejects_bad_video_link(link: str) -> None:
    with pytest.raises(ValidationError):
        schedule_request(video_call_link=link)


def test_create_schedules_returns_created_windows(db, settings, doctor, doctor_user) -> None:
    created = create_schedules(schedule_request(), db=db, current_user=doctor_user, settings=settings)

    assert [schedule.date for schedule in created] == [date(2024, 6, 1), date(2024, 6, 2)]
    assert [schedule.id for schedule in list_my_schedules(db=db, current_user=doctor_user)] == [
        created[1].id,
        created[0].id,
    ]


def test_create_schedules_reports_allowed_capacity(db, settings, doctor, doctor_user) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_schedules(schedule_request(max_patients_per_day=7), db=db, current_user=doctor_user, settings=settings)

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail['allowed'] == 6
    assert 'at most 6 patients per day' in exception_info.value.detail['message']


def test_create_schedules_rejects_reversed_times(db, settings, doctor, doctor_user) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_schedules(
            schedule_request(start_time=time(11, 0), end_time=time(10, 0)),
            db=db,
            current_user=doctor_user,
            settings=settings,
        )

    assert exception_info.value.status_code == 400
    assert exception_info.value.detail == 'End time must be after start time.'


def test_create_schedules_requires_doctor_profile(db, settings, admin_user) -> None:
    with pytest.raises(HTTPException) as exception_info:
        create_schedules(schedule_request(), db=db, current_user=admin_user, settings=settings)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Doctor profile not found.'


def test_edit_schedule_by_other_doctor_is_forbidden(db, settings, other_doctor, other_doctor_user, schedule_factory) -> None:
    schedule = schedule_factory()

    with pytest.raises(HTTPException) as exception_info:
        edit_schedule(
            schedule.id,
            EditScheduleRequest(start_time=time(9, 0), end_time=time(11, 0), max_patients_per_day=6),
            db=db,
            current_user=other_doctor_user,
            settings=settings,
        )

    assert exception_info.value.status_code == 403


def test_delete_referenced_schedule_conflicts(db, settings, doctor, doctor_user, patient, schedule_factory) -> None:
    schedule = schedule_factory()
    appointments.book_appointment(db, settings, patient, doctor.id, datetime(2024, 6, 1, 9, 0))

    with pytest.raises(HTTPException) as exception_info:
        delete_schedule(schedule.id, db=db, current_user=doctor_user)

    assert exception_info.value.status_code == 409
    assert exception_info.value.detail == 'Cannot delete schedule with existing appointments.'


def test_list_available_slots_omits_booked_slots(db, settings, doctor, patient, patient_user, schedule_factory) -> None:
    schedule_factory()
    appointments.book_appointment(db, settings, patient, doctor.id, datetime(2024, 6, 1, 9, 12))

    response = list_available_slots(
        doctor_id=doctor.id, day=date(2024, 6, 1), db=db, current_user=patient_user, settings=settings
    )

    assert response.slot_minutes == 10
    assert datetime(2024, 6, 1, 9, 10) not in response.slots
    assert response.slots[0] == datetime(2024, 6, 1, 9, 0)
    assert len(response.slots) == 5


def test_list_available_slots_for_fully_booked_day(db, settings, doctor, patient, patient_user, schedule_factory) -> None:
    schedule_factory(start=time(9, 0), end=time(9, 20), max_patients=2)
    appointments.book_appointment(db, settings, patient, doctor.id, datetime(2024, 6, 1, 9, 0))
    appointments.book_appointment(db, settings, patient, doctor.id, datetime(2024, 6, 1, 9, 10))

    with pytest.raises(HTTPException) as exception_info:
        list_available_slots(doctor_id=doctor.id, day=date(2024, 6, 1), db=db, current_user=patient_user, settings=settings)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'No available slots for this date.'


def test_list_available_slots_without_schedule(db, settings, doctor, patient_user) -> None:
    with pytest.raises(HTTPException) as exception_info:
        list_available_slots(doctor_id=doctor.id, day=date(2024, 6, 1), db=db, current_user=patient_user, settings=settings)

    assert exception_info.value.status_code == 404
    assert exception_info.value.detail == 'Doctor has no schedule on this date.'

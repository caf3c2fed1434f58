from datetime import date, datetime, time

import pytest

from telemed.scheduling.availability import (
    AvailabilityWindow,
    derive_slots,
    slot_minutes,
    total_minutes_between,
    validate_window,
)
from telemed.scheduling.errors import InvalidWindow, ValidationError


def make_window(start: time, end: time, max_patients: int) -> AvailabilityWindow:
    return AvailabilityWindow(
        doctor_id=1,
        day=date(2024, 6, 1),
        start=start,
        end=end,
        max_patients_per_day=max_patients,
    )


def test_derive_slots_divides_window_evenly() -> None:
    slots = derive_slots(make_window(time(9, 0), time(11, 0), 4))

    assert slots == [
        datetime(2024, 6, 1, 9, 0),
        datetime(2024, 6, 1, 9, 30),
        datetime(2024, 6, 1, 10, 0),
        datetime(2024, 6, 1, 10, 30),
    ]


@pytest.mark.parametrize(
    ('start', 'end', 'max_patients', 'expected_count'),
    [
        (time(9, 0), time(10, 0), 6, 6),
        (time(9, 0), time(17, 0), 16, 16),
        (time(9, 0), time(10, 0), 7, 7),
        (time(9, 0), time(9, 50), 3, 3),
        (time(9, 0), time(9, 2), 5, 2),
    ],
)
def test_derive_slots_never_exceeds_capacity(start: time, end: time, max_patients: int, expected_count: int) -> None:
    assert len(derive_slots(make_window(start, end, max_patients))) == expected_count


def test_derive_slots_drops_partial_trailing_slot() -> None:
    window = make_window(time(9, 0), time(9, 50), 3)
    slots = derive_slots(window)

    assert slot_minutes(window) == 16
    assert slots[-1] == datetime(2024, 6, 1, 9, 32)
    assert all(slot + (slots[1] - slots[0]) <= window.ends_at for slot in slots)


def test_slot_minutes_floors_and_never_drops_below_one() -> None:
    assert slot_minutes(make_window(time(9, 0), time(10, 0), 7)) == 8
    assert slot_minutes(make_window(time(9, 0), time(9, 2), 5)) == 1


def test_total_minutes_between() -> None:
    assert total_minutes_between(time(9, 15), time(12, 45)) == 210


def test_validate_window_rejects_end_before_start() -> None:
    with pytest.raises(InvalidWindow) as exception_info:
        validate_window(time(10, 0), time(9, 0), 3)

    assert exception_info.value.message == 'End time must be after start time.'


def test_validate_window_rejects_equal_start_and_end() -> None:
    with pytest.raises(InvalidWindow):
        validate_window(time(9, 0), time(9, 0), 1)


@pytest.mark.parametrize('max_patients', [0, -3])
def test_validate_window_rejects_non_positive_capacity(max_patients: int) -> None:
    with pytest.raises(ValidationError) as exception_info:
        validate_window(time(9, 0), time(10, 0), max_patients)

    assert exception_info.value.message == 'Max patients per day must be greater than zero.'


def test_validate_window_reports_allowed_capacity_when_slots_too_short() -> None:
    with pytest.raises(InvalidWindow) as exception_info:
        validate_window(time(9, 0), time(9, 15), 2)

    assert exception_info.value.allowed == 1
    assert 'at most 1 patients per day' in exception_info.value.message
    assert '(09:00 - 09:15)' in exception_info.value.message


def test_validate_window_accepts_exactly_minimum_minutes() -> None:
    validate_window(time(9, 0), time(10, 0), 6)


def test_validate_window_honours_configured_minimum() -> None:
    with pytest.raises(InvalidWindow) as exception_info:
        validate_window(time(9, 0), time(10, 0), 6, min_minutes_per_patient=15)

    assert exception_info.value.allowed == 4

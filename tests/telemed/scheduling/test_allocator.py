from datetime import date, datetime, time, timedelta, timezone

import pytest

from telemed.scheduling.allocator import SlotAllocator
from telemed.scheduling.availability import AvailabilityWindow
from telemed.scheduling.errors import InvalidWindow, NoScheduleForDate, OutsideWindow, SlotAlreadyBooked
from telemed.scheduling.timezones import CivilClock


class InMemoryLedger:
    def __init__(self, windows=None) -> None:
        self.windows = {(window.doctor_id, window.day): window for window in windows or []}
        self.bookings: list[tuple[int, datetime]] = []
        self.range_queries: list[tuple[datetime, datetime]] = []

    def find_window(self, doctor_id: int, day: date):
        return self.windows.get((doctor_id, day))

    def booked_utc(self, doctor_id: int, start_utc: datetime, end_utc: datetime):
        self.range_queries.append((start_utc, end_utc))
        return [
            booked for booked_doctor, booked in self.bookings
            if booked_doctor == doctor_id and start_utc <= booked < end_utc
        ]

    def book(self, doctor_id: int, utc_start: datetime) -> None:
        self.bookings.append((doctor_id, utc_start))


def window(start=time(9, 0), end=time(10, 0), max_patients=6, day=date(2024, 6, 1), doctor_id=1):
    return AvailabilityWindow(
        doctor_id=doctor_id,
        day=day,
        start=start,
        end=end,
        max_patients_per_day=max_patients,
        schedule_id=42,
    )


@pytest.fixture
def clock() -> CivilClock:
    return CivilClock('Asia/Dhaka', fallback_offset_minutes=360)


def test_allocate_snaps_to_containing_slot_and_converts_to_utc(clock: CivilClock) -> None:
    ledger = InMemoryLedger([window(start=time(9, 0), end=time(11, 0), max_patients=4)])
    allocator = SlotAllocator(clock, ledger)

    allocated = allocator.allocate(1, datetime(2024, 6, 1, 10, 5))

    assert allocated.civil_start == datetime(2024, 6, 1, 10, 0)
    assert allocated.utc_start == datetime(2024, 6, 1, 4, 0)
    assert allocated.slot_key == '2024-06-01 10:00'
    assert allocated.slot_minutes == 30
    assert allocated.slot_index == 2
    assert allocated.window.schedule_id == 42


def test_allocate_fetches_occupancy_for_the_whole_civil_day(clock: CivilClock) -> None:
    ledger = InMemoryLedger([window()])
    SlotAllocator(clock, ledger).allocate(1, datetime(2024, 6, 1, 9, 0))

    assert ledger.range_queries == [(datetime(2024, 5, 31, 18, 0), datetime(2024, 6, 1, 18, 0))]


def test_allocate_rejects_taken_slot_for_any_time_inside_it(clock: CivilClock) -> None:
    ledger = InMemoryLedger([window()])
    allocator = SlotAllocator(clock, ledger)

    first = allocator.allocate(1, datetime(2024, 6, 1, 9, 0))
    ledger.book(1, first.utc_start)

    for minute in range(0, 10):
        with pytest.raises(SlotAlreadyBooked):
            allocator.allocate(1, datetime(2024, 6, 1, 9, minute))

    second = allocator.allocate(1, datetime(2024, 6, 1, 9, 10))
    assert second.slot_key == '2024-06-01 09:10'


def test_allocate_ignores_other_doctors_bookings(clock: CivilClock) -> None:
    ledger = InMemoryLedger([window(), window(doctor_id=2)])
    ledger.book(2, datetime(2024, 6, 1, 3, 0))

    allocated = SlotAllocator(clock, ledger).allocate(1, datetime(2024, 6, 1, 9, 0))

    assert allocated.slot_index == 0


def test_booking_near_local_midnight_is_matched_by_civil_key(clock: CivilClock) -> None:
    # 00:00-01:00 Dhaka lies on the previous UTC date.
    ledger = InMemoryLedger([window(start=time(0, 0), end=time(1, 0), max_patients=2)])
    ledger.book(1, datetime(2024, 5, 31, 18, 0))

    with pytest.raises(SlotAlreadyBooked):
        SlotAllocator(clock, ledger).allocate(1, datetime(2024, 6, 1, 0, 10))


def test_request_at_window_start_maps_to_first_slot(clock: CivilClock) -> None:
    allocated = SlotAllocator(clock, InMemoryLedger([window()])).allocate(1, datetime(2024, 6, 1, 9, 0))

    assert allocated.slot_index == 0
    assert allocated.civil_start == datetime(2024, 6, 1, 9, 0)


@pytest.mark.parametrize('requested', [datetime(2024, 6, 1, 10, 0), datetime(2024, 6, 1, 8, 59)])
def test_request_outside_window_is_rejected(clock: CivilClock, requested: datetime) -> None:
    with pytest.raises(OutsideWindow):
        SlotAllocator(clock, InMemoryLedger([window()])).allocate(1, requested)


def test_missing_window_is_reported(clock: CivilClock) -> None:
    with pytest.raises(NoScheduleForDate) as exception_info:
        SlotAllocator(clock, InMemoryLedger()).allocate(1, datetime(2024, 6, 1, 9, 0))

    assert exception_info.value.message == 'Doctor has no schedule on this date.'


def test_invalid_stored_window_is_rejected(clock: CivilClock) -> None:
    ledger = InMemoryLedger([window(start=time(9, 0), end=time(9, 15), max_patients=2)])

    with pytest.raises(InvalidWindow):
        SlotAllocator(clock, ledger).allocate(1, datetime(2024, 6, 1, 9, 0))


def test_request_in_trailing_remainder_snaps_to_last_whole_slot(clock: CivilClock) -> None:
    ledger = InMemoryLedger([window(start=time(9, 0), end=time(9, 50), max_patients=3)])

    allocated = SlotAllocator(clock, ledger).allocate(1, datetime(2024, 6, 1, 9, 49))

    assert allocated.civil_start == datetime(2024, 6, 1, 9, 32)
    assert allocated.slot_index == 2


def test_request_seconds_are_ignored(clock: CivilClock) -> None:
    allocated = SlotAllocator(clock, InMemoryLedger([window()])).allocate(1, datetime(2024, 6, 1, 9, 59, 59))

    assert allocated.civil_start == datetime(2024, 6, 1, 9, 50)


def test_available_slots_excludes_booked_keys(clock: CivilClock) -> None:
    ledger = InMemoryLedger([window()])
    ledger.book(1, clock.to_utc(datetime(2024, 6, 1, 9, 20)))

    free = SlotAllocator(clock, ledger).available_slots(1, date(2024, 6, 1))

    assert datetime(2024, 6, 1, 9, 20) not in free
    assert len(free) == 5


@pytest.mark.parametrize(
    'requested',
    [
        datetime(2024, 6, 1, 10, 5, tzinfo=timezone(timedelta(hours=6))),
        datetime(2024, 6, 1, 4, 5, tzinfo=timezone.utc),
    ],
)
def test_aware_request_is_read_in_the_civil_zone(clock: CivilClock, requested: datetime) -> None:
    ledger = InMemoryLedger([window(start=time(9, 0), end=time(11, 0), max_patients=4)])

    allocated = SlotAllocator(clock, ledger).allocate(1, requested)

    assert allocated.civil_start == datetime(2024, 6, 1, 10, 0)
    assert allocated.utc_start == datetime(2024, 6, 1, 4, 0)


def test_aware_request_uses_the_civil_date(clock: CivilClock) -> None:
    # 19:30 UTC on May 31 is 01:30 on June 1 in Dhaka.
    ledger = InMemoryLedger([window(start=time(1, 0), end=time(2, 0), max_patients=2)])

    allocated = SlotAllocator(clock, ledger).allocate(1, datetime(2024, 5, 31, 19, 30, tzinfo=timezone.utc))

    assert allocated.window.day == date(2024, 6, 1)
    assert allocated.slot_key == '2024-06-01 01:30'

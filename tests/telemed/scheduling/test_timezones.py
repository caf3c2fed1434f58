from datetime import date, datetime, timedelta, timezone

import pytest

from telemed.scheduling.timezones import CivilClock, clip_to_minute, resolve_zone


@pytest.fixture
def clock() -> CivilClock:
    return CivilClock('Asia/Dhaka', fallback_offset_minutes=360)


def test_to_utc_treats_input_as_civil_wall_clock(clock: CivilClock) -> None:
    assert clock.to_utc(datetime(2024, 6, 1, 10, 0)) == datetime(2024, 6, 1, 4, 0)


def test_to_utc_truncates_seconds_before_conversion(clock: CivilClock) -> None:
    assert clock.to_utc(datetime(2024, 6, 1, 10, 0, 59, 999999)) == datetime(2024, 6, 1, 4, 0)


def test_to_civil_accepts_naive_and_aware_utc(clock: CivilClock) -> None:
    naive = datetime(2024, 6, 1, 18, 30, 45)
    aware = naive.replace(tzinfo=timezone.utc)

    assert clock.to_civil(naive) == datetime(2024, 6, 2, 0, 30)
    assert clock.to_civil(aware) == datetime(2024, 6, 2, 0, 30)


def test_to_utc_converts_aware_input_from_its_own_zone(clock: CivilClock) -> None:
    aware = datetime(2024, 6, 1, 4, 0, tzinfo=timezone.utc)

    assert clock.to_utc(aware) == datetime(2024, 6, 1, 4, 0)


def test_slot_key_is_minute_precision_string(clock: CivilClock) -> None:
    assert clock.slot_key(datetime(2024, 6, 1, 9, 5, 33)) == '2024-06-01 09:05'


def test_round_trip_holds_for_every_minute_of_a_day(clock: CivilClock) -> None:
    start = datetime(2024, 6, 1, 0, 0)
    for minute in range(0, 24 * 60, 7):
        civil = start + timedelta(minutes=minute)
        assert clock.to_civil(clock.to_utc(civil)) == civil
        assert clock.slot_key_from_utc(clock.to_utc(civil)) == clock.slot_key(civil)


def test_day_range_utc_spans_the_civil_day(clock: CivilClock) -> None:
    start_utc, end_utc = clock.day_range_utc(date(2024, 6, 1))

    assert start_utc == datetime(2024, 5, 31, 18, 0)
    assert end_utc == datetime(2024, 6, 1, 18, 0)


def test_unknown_zone_falls_back_to_fixed_offset() -> None:
    clock = CivilClock('Mars/Olympus_Mons', fallback_offset_minutes=360)

    assert clock.zone.utcoffset(None) == timedelta(hours=6)
    assert clock.to_utc(datetime(2024, 6, 1, 10, 5)) == datetime(2024, 6, 1, 4, 5)


def test_resolve_zone_handles_invalid_key() -> None:
    zone = resolve_zone('../etc/passwd', 90)

    assert zone.utcoffset(None) == timedelta(minutes=90)


def test_nonexistent_local_time_does_not_raise() -> None:
    clock = CivilClock('Europe/Berlin', fallback_offset_minutes=60)

    # 02:30 does not exist on the spring-forward date.
    converted = clock.to_utc(datetime(2024, 3, 31, 2, 30))

    assert isinstance(converted, datetime)
    assert converted.tzinfo is None


def test_clip_to_minute_drops_seconds() -> None:
    assert clip_to_minute(datetime(2024, 1, 1, 8, 15, 42, 10)) == datetime(2024, 1, 1, 8, 15)


def test_as_civil_reads_aware_values_in_the_civil_zone(clock: CivilClock) -> None:
    aware = datetime(2024, 6, 1, 4, 5, 30, tzinfo=timezone.utc)

    assert clock.as_civil(aware) == datetime(2024, 6, 1, 10, 5)
    assert clock.as_civil(datetime(2024, 6, 1, 10, 5, 30)) == datetime(2024, 6, 1, 10, 5)

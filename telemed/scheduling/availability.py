from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from telemed.scheduling.errors import InvalidWindow

DEFAULT_MIN_MINUTES_PER_PATIENT = 10


@dataclass(frozen=True)
class AvailabilityWindow:
    """A doctor's working hours and patient capacity for one calendar date."""

    doctor_id: int
    day: date
    start: time
    end: time
    max_patients_per_day: int
    schedule_id: int | None = None
    is_approved: bool = False
    video_call_link: str | None = None

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.day, self.start)

    @property
    def ends_at(self) -> datetime:
        return datetime.combine(self.day, self.end)

    @property
    def total_minutes(self) -> int:
        return int((self.ends_at - self.starts_at).total_seconds() // 60)


def total_minutes_between(start: time, end: time) -> int:
    anchor = date(2000, 1, 1)
    delta = datetime.combine(anchor, end) - datetime.combine(anchor, start)
    return int(delta.total_seconds() // 60)


def validate_window(
    start: time,
    end: time,
    max_patients_per_day: int,
    min_minutes_per_patient: int = DEFAULT_MIN_MINUTES_PER_PATIENT,
) -> None:
    if end <= start:
        raise InvalidWindow('End time must be after start time.')

    if max_patients_per_day <= 0:
        raise InvalidWindow('Max patients per day must be greater than zero.')

    total_minutes = total_minutes_between(start, end)
    if total_minutes / max_patients_per_day < min_minutes_per_patient:
        allowed = total_minutes // min_minutes_per_patient
        raise InvalidWindow(
            f'Each patient must have at least {min_minutes_per_patient} minutes. '
            f'With the selected time range ({start:%H:%M} - {end:%H:%M}) '
            f'you can schedule at most {allowed} patients per day.',
            allowed=allowed,
        )


def slot_minutes(window: AvailabilityWindow) -> int:
    return max(1, window.total_minutes // window.max_patients_per_day)


def derive_slots(window: AvailabilityWindow) -> list[datetime]:
    """Civil start times of every whole slot in the window, in order.

    A trailing remainder shorter than one slot is dropped.
    """
    step = timedelta(minutes=slot_minutes(window))
    end = window.ends_at
    current = window.starts_at
    slots: list[datetime] = []

    while current + step <= end:
        slots.append(current)
        current += step

    return slots

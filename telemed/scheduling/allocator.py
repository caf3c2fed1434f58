"""Resolves a requested civil time to a free bookable slot.

Slot identity is defined in civil time while bookings are persisted in UTC, so
occupancy is computed by translating the civil day into a UTC range, fetching
the bookings inside it and re-deriving each booking's civil slot key.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Protocol

from telemed.scheduling.availability import (
    DEFAULT_MIN_MINUTES_PER_PATIENT,
    AvailabilityWindow,
    derive_slots,
    slot_minutes,
    validate_window,
)
from telemed.scheduling.errors import NoScheduleForDate, OutsideWindow, SlotAlreadyBooked
from telemed.scheduling.timezones import CivilClock

logger = logging.getLogger(__name__)


class BookingLedger(Protocol):
    def find_window(self, doctor_id: int, day: date) -> AvailabilityWindow | None:
        ...

    def booked_utc(self, doctor_id: int, start_utc: datetime, end_utc: datetime) -> Iterable[datetime]:
        """UTC instants of slot-holding appointments in ``[start_utc, end_utc)``."""
        ...


@dataclass(frozen=True)
class AllocatedSlot:
    window: AvailabilityWindow
    civil_start: datetime
    utc_start: datetime
    slot_key: str
    slot_minutes: int
    slot_index: int


class SlotAllocator:
    def __init__(
        self,
        clock: CivilClock,
        ledger: BookingLedger,
        min_minutes_per_patient: int = DEFAULT_MIN_MINUTES_PER_PATIENT,
    ) -> None:
        self.clock = clock
        self.ledger = ledger
        self.min_minutes_per_patient = min_minutes_per_patient

    def _load_window(self, doctor_id: int, day: date) -> AvailabilityWindow:
        window = self.ledger.find_window(doctor_id, day)
        if window is None:
            raise NoScheduleForDate()

        validate_window(window.start, window.end, window.max_patients_per_day, self.min_minutes_per_patient)
        return window

    def occupied_keys(self, doctor_id: int, day: date) -> set[str]:
        start_utc, end_utc = self.clock.day_range_utc(day)
        return {
            self.clock.slot_key_from_utc(booked)
            for booked in self.ledger.booked_utc(doctor_id, start_utc, end_utc)
        }

    def allocate(self, doctor_id: int, requested_civil: datetime, day: date | None = None) -> AllocatedSlot:
        requested = self.clock.as_civil(requested_civil)
        day = day or requested.date()

        window = self._load_window(doctor_id, day)
        slots = derive_slots(window)

        if requested < window.starts_at or requested >= window.ends_at or not slots:
            raise OutsideWindow()

        minutes = slot_minutes(window)
        minutes_from_start = int((requested - window.starts_at).total_seconds() // 60)
        slot_index = min(max(0, minutes_from_start // minutes), len(slots) - 1)
        civil_start = slots[slot_index]
        key = self.clock.slot_key(civil_start)

        if key in self.occupied_keys(doctor_id, day):
            logger.info('Slot %s for doctor %s is already booked.', key, doctor_id)
            raise SlotAlreadyBooked()

        return AllocatedSlot(
            window=window,
            civil_start=civil_start,
            utc_start=self.clock.to_utc(civil_start),
            slot_key=key,
            slot_minutes=minutes,
            slot_index=slot_index,
        )

    def available_slots(self, doctor_id: int, day: date) -> list[datetime]:
        window = self._load_window(doctor_id, day)
        occupied = self.occupied_keys(doctor_id, day)
        return [slot for slot in derive_slots(window) if self.clock.slot_key(slot) not in occupied]

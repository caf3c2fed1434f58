from datetime import date, datetime
from functools import lru_cache

from sqlalchemy.orm import Session

from telemed.core.config import SchedulingConfig
from telemed.models.appointment import Appointment
from telemed.models.schedule import DoctorSchedule
from telemed.scheduling.allocator import SlotAllocator
from telemed.scheduling.availability import AvailabilityWindow
from telemed.scheduling.lifecycle import LifecyclePolicy
from telemed.scheduling.timezones import CivilClock


class SqlBookingLedger:
    """Reads windows and slot-holding bookings through a SQLAlchemy session."""

    def __init__(self, db: Session, require_approved: bool = False) -> None:
        self.db = db
        self.require_approved = require_approved

    def find_schedule(self, doctor_id: int, day: date) -> DoctorSchedule | None:
        query = self.db.query(DoctorSchedule).filter(
            DoctorSchedule.doctor_id == doctor_id,
            DoctorSchedule.date == day,
        )
        if self.require_approved:
            query = query.filter(DoctorSchedule.is_approved.is_(True))
        return query.order_by(DoctorSchedule.id.asc()).first()

    def find_window(self, doctor_id: int, day: date) -> AvailabilityWindow | None:
        schedule = self.find_schedule(doctor_id, day)
        return schedule.to_window() if schedule else None

    def booked_utc(self, doctor_id: int, start_utc: datetime, end_utc: datetime) -> list[datetime]:
        rows = self.db.query(Appointment.scheduled_at).filter(
            Appointment.doctor_id == doctor_id,
            Appointment.slot_key.is_not(None),
            Appointment.scheduled_at >= start_utc,
            Appointment.scheduled_at < end_utc,
        ).all()
        return [scheduled_at for (scheduled_at,) in rows]


@lru_cache(maxsize=8)
def get_clock(timezone_name: str, fallback_offset_minutes: int) -> CivilClock:
    return CivilClock(timezone_name, fallback_offset_minutes)


def clock_for(settings: SchedulingConfig) -> CivilClock:
    return get_clock(settings.timezone_name, settings.fallback_offset_minutes)


def policy_for(settings: SchedulingConfig) -> LifecyclePolicy:
    return LifecyclePolicy(paid_status=settings.payment_confirmed_status)


def build_allocator(db: Session, settings: SchedulingConfig) -> SlotAllocator:
    return SlotAllocator(
        clock_for(settings),
        SqlBookingLedger(db, require_approved=settings.require_approved_schedule),
        min_minutes_per_patient=settings.min_minutes_per_patient,
    )

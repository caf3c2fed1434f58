"""Doctor availability window definitions."""

from sqlalchemy import Boolean, Column, Date, ForeignKey, Integer, String, Time
from telemed.database import Base
from telemed.scheduling.availability import AvailabilityWindow


class DoctorSchedule(Base):
    """A doctor's working hours and patient capacity for one date."""
    __tablename__ = "doctor_schedules"

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    max_patients_per_day = Column(Integer, nullable=False)
    video_call_link = Column(String)
    is_approved = Column(Boolean, default=False)

    def to_window(self) -> AvailabilityWindow:
        return AvailabilityWindow(
            doctor_id=self.doctor_id,
            day=self.date,
            start=self.start_time,
            end=self.end_time,
            max_patients_per_day=self.max_patients_per_day,
            schedule_id=self.id,
            is_approved=bool(self.is_approved),
            video_call_link=self.video_call_link,
        )

import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from telemed.scheduling.errors import InvalidTransition, ValidationError

logger = logging.getLogger(__name__)


class AppointmentStatus(str, enum.Enum):
    pending_payment = 'pending_payment'
    awaiting_doctor_approval = 'awaiting_doctor_approval'
    approved = 'approved'
    rejected = 'rejected'
    rescheduled = 'rescheduled'
    completed = 'completed'
    cancelled = 'cancelled'


class PaymentStatus(str, enum.Enum):
    pending = 'pending'
    paid = 'paid'


# Statuses whose appointment no longer holds its slot.
SLOT_RELEASING_STATUSES = frozenset({AppointmentStatus.cancelled, AppointmentStatus.rescheduled})

TERMINAL_STATUSES = frozenset({
    AppointmentStatus.rejected,
    AppointmentStatus.rescheduled,
    AppointmentStatus.completed,
    AppointmentStatus.cancelled,
})

PAID_STATUS_CHOICES = frozenset({AppointmentStatus.completed, AppointmentStatus.awaiting_doctor_approval})


@dataclass(frozen=True)
class LifecyclePolicy:
    """Which transitions an appointment may take.

    ``paid_status`` is where a successful payment lands. ``completed`` skips
    doctor review entirely; ``awaiting_doctor_approval`` runs the full
    lifecycle. Appointments in ``paid_status`` stay reviewable by the doctor
    either way.
    """

    paid_status: AppointmentStatus = AppointmentStatus.completed
    transitions: dict = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        paid_status = AppointmentStatus(self.paid_status)
        if paid_status not in PAID_STATUS_CHOICES:
            raise ValidationError(f'Unsupported payment confirmation status: {paid_status.value}.')
        object.__setattr__(self, 'paid_status', paid_status)

        review_sources = {AppointmentStatus.awaiting_doctor_approval, paid_status}
        transitions = {
            AppointmentStatus.pending_payment: {
                paid_status,
                AppointmentStatus.rescheduled,
                AppointmentStatus.cancelled,
            },
            AppointmentStatus.awaiting_doctor_approval: {
                AppointmentStatus.approved,
                AppointmentStatus.rejected,
                AppointmentStatus.rescheduled,
            },
            AppointmentStatus.approved: {
                AppointmentStatus.completed,
                AppointmentStatus.rescheduled,
            },
        }
        for source in review_sources:
            transitions.setdefault(source, set()).update({
                AppointmentStatus.approved,
                AppointmentStatus.rejected,
                AppointmentStatus.rescheduled,
            })
        object.__setattr__(self, 'transitions', {key: frozenset(value) for key, value in transitions.items()})

    @property
    def skips_doctor_review(self) -> bool:
        return self.paid_status == AppointmentStatus.completed

    def allowed_targets(self, current: AppointmentStatus | str) -> frozenset:
        return self.transitions.get(AppointmentStatus(current), frozenset())

    def can_transition(self, current: AppointmentStatus | str, target: AppointmentStatus | str) -> bool:
        return AppointmentStatus(target) in self.allowed_targets(current)

    def transition(self, current: AppointmentStatus | str, target: AppointmentStatus | str) -> AppointmentStatus:
        target = AppointmentStatus(target)
        if not self.can_transition(current, target):
            raise InvalidTransition(AppointmentStatus(current).value, target.value)
        return target

    def is_reviewable(self, current: AppointmentStatus | str) -> bool:
        return AppointmentStatus.approved in self.allowed_targets(current)


def warn_on_review_shortcut(policy: LifecyclePolicy) -> None:
    if policy.skips_doctor_review:
        logger.warning(
            'Payment confirmation moves appointments straight to completed; '
            'set PAYMENT_CONFIRMED_STATUS=awaiting_doctor_approval to require doctor review first.'
        )


@dataclass(frozen=True)
class JoinWindow:
    opens_at: datetime
    closes_at: datetime

    def contains(self, instant: datetime) -> bool:
        return self.opens_at <= instant <= self.closes_at


def join_window(scheduled_utc: datetime, slot_minutes: int, lead_minutes: int = 5) -> JoinWindow:
    return JoinWindow(
        opens_at=scheduled_utc - timedelta(minutes=lead_minutes),
        closes_at=scheduled_utc + timedelta(minutes=slot_minutes),
    )


def stale_pending_cutoff(now_utc: datetime, ttl_hours: int) -> datetime:
    return now_utc - timedelta(hours=ttl_hours)

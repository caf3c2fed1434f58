"""Domain errors raised by the scheduling core.

The route layer maps each family to an HTTP status; the core itself never
imports the web framework.
"""


class SchedulingError(Exception):
    """Base class for domain failures reported back to the caller."""

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SchedulingError):
    pass


class NotFoundError(SchedulingError):
    pass


class ConflictError(SchedulingError):
    pass


class AuthorizationError(SchedulingError):
    pass


class NoScheduleForDate(NotFoundError):
    def __init__(self, message: str = "Doctor has no schedule on this date.") -> None:
        super().__init__(message)


class InvalidWindow(ValidationError):
    def __init__(self, message: str, allowed: int | None = None) -> None:
        super().__init__(message)
        self.allowed = allowed


class OutsideWindow(ValidationError):
    def __init__(self, message: str = "Selected time is outside the doctor's schedule.") -> None:
        super().__init__(message)


class SlotAlreadyBooked(ConflictError):
    def __init__(self, message: str = "This slot is already booked. Please choose another.") -> None:
        super().__init__(message)


class InvalidTransition(ConflictError):
    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Cannot move appointment from '{current}' to '{target}'.")
        self.current = current
        self.target = target

"""Errors raised by the scheduling and booking engine."""


class SchedulingError(Exception):
    """Base class for every engine failure surfaced to callers."""


class InvalidConfig(SchedulingError):
    """A day configuration or override is malformed."""


class InvalidSlot(SchedulingError):
    """The requested time is not a slot generated for that day."""


class NotBookable(InvalidSlot):
    """No schedule or override resolves to an available day."""


class SlotConflict(SchedulingError):
    """Another live appointment already holds the exact slot."""


class AppointmentNotFound(SchedulingError):
    pass


class AppointmentClosed(SchedulingError):
    """The appointment is in a terminal state and can no longer change."""


class InvalidTransition(SchedulingError):
    """The requested status change is not an allowed transition."""

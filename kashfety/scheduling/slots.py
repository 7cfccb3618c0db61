"""Slot generation.

Turns one resolved day configuration into the ordered list of discrete
bookable slots. Everything here is wall-clock time in the provider's local
zone and has no I/O.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Optional

from kashfety.scheduling.errors import InvalidConfig

MAX_SLOT_DURATION_MINUTES = 24 * 60


@dataclass(frozen=True)
class BreakWindow:
    start: time
    end: time

    def contains(self, value: time) -> bool:
        return self.start <= value < self.end


@dataclass(frozen=True)
class DayConfig:
    start_time: Optional[time]
    end_time: Optional[time]
    slot_duration_minutes: int
    break_window: Optional[BreakWindow] = None
    consultation_fee: Optional[Decimal] = None
    notes: str = ''


@dataclass(frozen=True)
class Slot:
    time: time
    duration_minutes: int

    @property
    def end_time(self) -> time:
        return _shift(self.time, self.duration_minutes)


def _shift(value: time, minutes: int) -> time:
    return (datetime.combine(date.min, value) + timedelta(minutes=minutes)).time()


def generate_slots(config: Optional[DayConfig]) -> list[Slot]:
    """Return the slots of a day in chronological order.

    Steps forward from ``start_time`` in fixed ``slot_duration_minutes``
    increments. A step whose start lies inside the break window is skipped
    rather than snapped to the break end, so every slot stays aligned to the
    configured duration. Malformed or missing input yields an empty list.
    """
    if config is None or config.start_time is None or config.end_time is None:
        return []

    duration = config.slot_duration_minutes or 0
    if duration <= 0 or duration > MAX_SLOT_DURATION_MINUTES:
        return []

    day_start = datetime.combine(date.min, config.start_time)
    day_end = datetime.combine(date.min, config.end_time)
    step = timedelta(minutes=duration)

    slots: list[Slot] = []
    current = day_start

    while current + step <= day_end:
        current_time = current.time()
        if config.break_window is None or not config.break_window.contains(current_time):
            slots.append(Slot(time=current_time, duration_minutes=duration))
        current += step

    return slots


def validate_day_config(config: DayConfig) -> DayConfig:
    if config.slot_duration_minutes is None or config.slot_duration_minutes <= 0:
        raise InvalidConfig('Slot duration must be a positive number of minutes.')

    if config.slot_duration_minutes > MAX_SLOT_DURATION_MINUTES:
        raise InvalidConfig(f'Slot duration cannot exceed {MAX_SLOT_DURATION_MINUTES} minutes.')

    if config.start_time is None or config.end_time is None:
        raise InvalidConfig('Start and end times are required for an available day.')

    if config.start_time >= config.end_time:
        raise InvalidConfig('Start time must be before end time.')

    window = config.break_window
    if window is not None:
        if window.start >= window.end:
            raise InvalidConfig('Break start must be before break end.')
        if window.start < config.start_time or window.end > config.end_time:
            raise InvalidConfig('Break must fall within working hours.')

    if config.consultation_fee is not None and config.consultation_fee < 0:
        raise InvalidConfig('Consultation fee cannot be negative.')

    return config


def build_break_window(break_start: Optional[time], break_end: Optional[time]) -> Optional[BreakWindow]:
    """Collapse a nullable pair of columns into a break window.

    Only one side being set is a configuration error, not "no break".
    """
    if break_start is None and break_end is None:
        return None
    if break_start is None or break_end is None:
        raise InvalidConfig('Break start and break end must be set together.')
    return BreakWindow(start=break_start, end=break_end)

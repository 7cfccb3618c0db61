"""Availability resolution.

Combines the weekly schedule, date overrides and live appointments of one
provider/service pair into the open slots for a date. Read-only: callers get
a snapshot that may already be stale, booking re-validates on write.
"""

import logging
from datetime import date, time, timedelta
from typing import Optional

from sqlalchemy.orm import Session

from kashfety.core import config
from kashfety.models.appointment import Appointment, AppointmentStatus
from kashfety.models.schedule import DateOverride, DaySchedule
from kashfety.scheduling.errors import InvalidConfig
from kashfety.scheduling.slots import BreakWindow, DayConfig, Slot, build_break_window, generate_slots

logger = logging.getLogger(__name__)


def day_of_week(value: date) -> int:
    """Weekday index with 0 for Sunday through 6 for Saturday."""
    return value.isoweekday() % 7


def _break_window(break_start: Optional[time], break_end: Optional[time]) -> Optional[BreakWindow]:
    # Rows written before break validation existed may carry half a break.
    # Reads must not fail on them, so such a break is ignored.
    try:
        return build_break_window(break_start, break_end)
    except InvalidConfig:
        logger.warning('Ignoring half-set break window start=%s end=%s', break_start, break_end)
        return None


def day_config_from_schedule(row: DaySchedule) -> DayConfig:
    return DayConfig(
        start_time=row.start_time,
        end_time=row.end_time,
        slot_duration_minutes=row.slot_duration_minutes,
        break_window=_break_window(row.break_start, row.break_end),
        consultation_fee=row.consultation_fee,
        notes=row.notes or '',
    )


def _config_from_override(override: DateOverride, weekday_row: Optional[DaySchedule]) -> DayConfig:
    duration = override.slot_duration_minutes
    if not duration:
        duration = weekday_row.slot_duration_minutes if weekday_row else config.DEFAULT_SLOT_DURATION_MINUTES

    fee = override.consultation_fee
    if fee is None and weekday_row is not None:
        fee = weekday_row.consultation_fee

    return DayConfig(
        start_time=override.start_time,
        end_time=override.end_time,
        slot_duration_minutes=duration,
        break_window=_break_window(override.break_start, override.break_end),
        consultation_fee=fee,
        notes=override.notes or '',
    )


def _select_day_config(
    weekday_row: Optional[DaySchedule],
    override: Optional[DateOverride],
) -> Optional[DayConfig]:
    if override is not None:
        if not override.is_available:
            return None
        return _config_from_override(override, weekday_row)

    if weekday_row is None or not weekday_row.is_available:
        return None

    return day_config_from_schedule(weekday_row)


def get_date_override(
    db: Session,
    provider_id: str,
    service_offering_id: str,
    on_date: date,
) -> Optional[DateOverride]:
    return db.query(DateOverride).filter(
        DateOverride.provider_id == provider_id,
        DateOverride.service_offering_id == service_offering_id,
        DateOverride.date == on_date,
    ).first()


def get_day_schedule(
    db: Session,
    provider_id: str,
    service_offering_id: str,
    weekday: int,
) -> Optional[DaySchedule]:
    return db.query(DaySchedule).filter(
        DaySchedule.provider_id == provider_id,
        DaySchedule.service_offering_id == service_offering_id,
        DaySchedule.day_of_week == weekday,
    ).first()


def resolve_day_config(
    db: Session,
    provider_id: str,
    service_offering_id: str,
    on_date: date,
) -> Optional[DayConfig]:
    """Pick the configuration that governs ``on_date``.

    An override for the exact date wins over the weekly row, including an
    override that closes the day. ``None`` means the date is not bookable.
    """
    weekday_row = get_day_schedule(db, provider_id, service_offering_id, day_of_week(on_date))
    override = get_date_override(db, provider_id, service_offering_id, on_date)
    return _select_day_config(weekday_row, override)


def get_taken_times(
    db: Session,
    provider_id: str,
    service_offering_id: str,
    on_date: date,
) -> set[time]:
    rows = db.query(Appointment.time).filter(
        Appointment.provider_id == provider_id,
        Appointment.service_offering_id == service_offering_id,
        Appointment.date == on_date,
        Appointment.status != AppointmentStatus.CANCELLED.value,
    ).all()
    return {row_time for (row_time,) in rows}


def resolve_availability(
    db: Session,
    provider_id: str,
    service_offering_id: str,
    on_date: date,
) -> list[Slot]:
    day_config = resolve_day_config(db, provider_id, service_offering_id, on_date)
    if day_config is None:
        return []

    slots = generate_slots(day_config)
    if not slots:
        return []

    taken_times = get_taken_times(db, provider_id, service_offering_id, on_date)
    open_slots = [slot for slot in slots if slot.time not in taken_times]

    logger.debug(
        'Resolved %d/%d open slots for provider=%s offering=%s date=%s',
        len(open_slots),
        len(slots),
        provider_id,
        service_offering_id,
        on_date,
    )
    return sorted(open_slots, key=lambda slot: slot.time)


def list_available_dates(
    db: Session,
    provider_id: str,
    service_offering_id: str,
    start_date: date,
    end_date: date,
) -> list[date]:
    """Dates in ``[start_date, end_date]`` whose day configuration yields slots.

    Does not subtract appointments; a fully booked day is still listed.
    """
    if end_date < start_date:
        return []

    weekly_rows = db.query(DaySchedule).filter(
        DaySchedule.provider_id == provider_id,
        DaySchedule.service_offering_id == service_offering_id,
    ).all()
    weekly = {row.day_of_week: row for row in weekly_rows}

    overrides = db.query(DateOverride).filter(
        DateOverride.provider_id == provider_id,
        DateOverride.service_offering_id == service_offering_id,
        DateOverride.date >= start_date,
        DateOverride.date <= end_date,
    ).all()
    overrides_by_date = {override.date: override for override in overrides}

    available_dates: list[date] = []
    current_day = start_date

    while current_day <= end_date:
        weekday_row = weekly.get(day_of_week(current_day))
        override = overrides_by_date.get(current_day)

        day_config = _select_day_config(weekday_row, override)
        if day_config is not None and generate_slots(day_config):
            available_dates.append(current_day)

        current_day += timedelta(days=1)

    return available_dates

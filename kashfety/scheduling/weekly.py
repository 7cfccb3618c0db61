"""Weekly schedule management for a provider's service offering."""

import logging
from dataclasses import dataclass
from typing import Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kashfety.core import config
from kashfety.models.schedule import DaySchedule
from kashfety.scheduling.availability import day_config_from_schedule
from kashfety.scheduling.errors import InvalidConfig, SchedulingError
from kashfety.scheduling.slots import DayConfig, validate_day_config

logger = logging.getLogger(__name__)

DAYS_OF_WEEK = range(7)

WeeklySchedule = dict[int, Optional[DayConfig]]


@dataclass
class OfferingSwitch:
    service_offering_id: str
    schedule: WeeklySchedule
    autosaved: bool = False
    autosave_error: Optional[str] = None
    previous_service_offering_id: Optional[str] = None


def _validate_days(days: Mapping[int, Optional[DayConfig]]) -> None:
    for day, day_config in days.items():
        if day not in DAYS_OF_WEEK:
            raise InvalidConfig(f'Day of week must be between 0 and 6, got {day}.')
        if day_config is not None:
            validate_day_config(day_config)


def _row_for(provider_id: str, service_offering_id: str, day: int, day_config: Optional[DayConfig]) -> DaySchedule:
    if day_config is None:
        return DaySchedule(
            provider_id=provider_id,
            service_offering_id=service_offering_id,
            day_of_week=day,
            is_available=False,
            slot_duration_minutes=config.DEFAULT_SLOT_DURATION_MINUTES,
        )

    window = day_config.break_window
    return DaySchedule(
        provider_id=provider_id,
        service_offering_id=service_offering_id,
        day_of_week=day,
        is_available=True,
        start_time=day_config.start_time,
        end_time=day_config.end_time,
        break_start=window.start if window else None,
        break_end=window.end if window else None,
        slot_duration_minutes=day_config.slot_duration_minutes,
        consultation_fee=day_config.consultation_fee,
        notes=day_config.notes or None,
    )


def replace_weekly_schedule(
    db: Session,
    provider_id: str,
    service_offering_id: str,
    days: Mapping[int, Optional[DayConfig]],
) -> WeeklySchedule:
    """Replace all seven weekday rows of the provider/service pair.

    Days missing from ``days`` or mapped to ``None`` are stored as
    unavailable. Nothing is written if any day fails validation.
    """
    _validate_days(days)

    try:
        db.query(DaySchedule).filter(
            DaySchedule.provider_id == provider_id,
            DaySchedule.service_offering_id == service_offering_id,
        ).delete(synchronize_session=False)
        # Deletes must reach the database before the unique index sees new rows.
        db.flush()

        for day in DAYS_OF_WEEK:
            db.add(_row_for(provider_id, service_offering_id, day, days.get(day)))

        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    logger.info(
        'Replaced weekly schedule provider=%s offering=%s available_days=%s',
        provider_id,
        service_offering_id,
        sorted(day for day, day_config in days.items() if day_config is not None),
    )
    return {day: days.get(day) for day in DAYS_OF_WEEK}


def get_weekly_schedule(db: Session, provider_id: str, service_offering_id: str) -> WeeklySchedule:
    rows = db.query(DaySchedule).filter(
        DaySchedule.provider_id == provider_id,
        DaySchedule.service_offering_id == service_offering_id,
    ).all()

    schedule: WeeklySchedule = {day: None for day in DAYS_OF_WEEK}
    for row in rows:
        if row.is_available:
            schedule[row.day_of_week] = day_config_from_schedule(row)
    return schedule


def copy_day(
    days: Mapping[int, Optional[DayConfig]],
    source_day: int,
    target_day: int,
) -> WeeklySchedule:
    """Return a copy of ``days`` with ``target_day`` set to ``source_day``'s config."""
    if source_day not in DAYS_OF_WEEK or target_day not in DAYS_OF_WEEK:
        raise InvalidConfig('Day of week must be between 0 and 6.')
    copied = dict(days)
    copied[target_day] = days.get(source_day)
    return copied


def switch_service_offering(
    db: Session,
    provider_id: str,
    current_service_offering_id: Optional[str],
    pending_days: Optional[Mapping[int, Optional[DayConfig]]],
    next_service_offering_id: str,
) -> OfferingSwitch:
    """Load another offering's schedule, first saving unsaved edits of the current one.

    The auto-save is best-effort: its failure is reported on the result and
    never prevents the switch.
    """
    autosaved = False
    autosave_error = None

    if current_service_offering_id and pending_days is not None:
        try:
            replace_weekly_schedule(db, provider_id, current_service_offering_id, pending_days)
            autosaved = True
        except (SchedulingError, SQLAlchemyError) as exc:
            logger.warning(
                'Auto-save failed for provider=%s offering=%s before switching to %s: %s',
                provider_id,
                current_service_offering_id,
                next_service_offering_id,
                exc,
            )
            autosave_error = str(exc)

    return OfferingSwitch(
        service_offering_id=next_service_offering_id,
        schedule=get_weekly_schedule(db, provider_id, next_service_offering_id),
        autosaved=autosaved,
        autosave_error=autosave_error,
        previous_service_offering_id=current_service_offering_id,
    )

"""Date-specific overrides of the weekly schedule (vacations, one-off hours)."""

import logging
from dataclasses import replace
from datetime import date
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kashfety.core import config
from kashfety.models.schedule import DateOverride
from kashfety.scheduling.availability import get_date_override
from kashfety.scheduling.slots import DayConfig, validate_day_config

logger = logging.getLogger(__name__)


def upsert_date_override(
    db: Session,
    provider_id: str,
    service_offering_id: str,
    on_date: date,
    day_config: Optional[DayConfig] = None,
    notes: Optional[str] = None,
) -> DateOverride:
    """Create or replace the override for one date.

    ``day_config=None`` closes the date. A config without a slot duration
    inherits the weekday's duration when slots are resolved.
    """
    if day_config is not None:
        duration = day_config.slot_duration_minutes or config.DEFAULT_SLOT_DURATION_MINUTES
        validate_day_config(replace(day_config, slot_duration_minutes=duration))

    try:
        override = get_date_override(db, provider_id, service_offering_id, on_date)
        if override is None:
            override = DateOverride(
                provider_id=provider_id,
                service_offering_id=service_offering_id,
                date=on_date,
            )
            db.add(override)

        if day_config is None:
            override.is_available = False
            override.start_time = override.end_time = None
            override.break_start = override.break_end = None
            override.slot_duration_minutes = None
            override.consultation_fee = None
        else:
            window = day_config.break_window
            override.is_available = True
            override.start_time = day_config.start_time
            override.end_time = day_config.end_time
            override.break_start = window.start if window else None
            override.break_end = window.end if window else None
            override.slot_duration_minutes = day_config.slot_duration_minutes or None
            override.consultation_fee = day_config.consultation_fee
            if notes is None:
                notes = day_config.notes
        override.notes = notes or None

        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(override)
    logger.info(
        'Saved date override provider=%s offering=%s date=%s available=%s',
        provider_id,
        service_offering_id,
        on_date,
        override.is_available,
    )
    return override


def remove_date_override(db: Session, provider_id: str, service_offering_id: str, on_date: date) -> bool:
    try:
        deleted = db.query(DateOverride).filter(
            DateOverride.provider_id == provider_id,
            DateOverride.service_offering_id == service_offering_id,
            DateOverride.date == on_date,
        ).delete(synchronize_session=False)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    return deleted > 0


def list_date_overrides(
    db: Session,
    provider_id: str,
    service_offering_id: str,
    from_date: Optional[date] = None,
) -> list[DateOverride]:
    query = db.query(DateOverride).filter(
        DateOverride.provider_id == provider_id,
        DateOverride.service_offering_id == service_offering_id,
    )
    if from_date is not None:
        query = query.filter(DateOverride.date >= from_date)
    return query.order_by(DateOverride.date.asc()).all()

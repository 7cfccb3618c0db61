"""Booking coordination.

Availability shown to a patient can be stale by the time they book, so the
slot is re-validated inside the booking transaction and exclusivity comes
from the ``uq_appointments_active_slot`` partial unique index. Losing the
race surfaces as ``SlotConflict``; callers re-resolve availability and retry.
"""

import logging
from datetime import date, time
from decimal import Decimal
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from kashfety.models.appointment import Appointment, AppointmentStatus
from kashfety.scheduling.availability import resolve_day_config
from kashfety.scheduling.errors import AppointmentClosed, InvalidSlot, NotBookable, SlotConflict
from kashfety.scheduling.lifecycle import OPEN_STATUSES, append_note, get_appointment
from kashfety.scheduling.slots import DayConfig, Slot, generate_slots

logger = logging.getLogger(__name__)


def require_slot(
    db: Session,
    provider_id: str,
    service_offering_id: str,
    on_date: date,
    at_time: time,
) -> tuple[DayConfig, Slot]:
    day_config = resolve_day_config(db, provider_id, service_offering_id, on_date)
    if day_config is None:
        raise NotBookable('The provider is not available on this day for this service.')

    for slot in generate_slots(day_config):
        if slot.time == at_time:
            return day_config, slot

    raise InvalidSlot('Requested time is not a bookable slot for this day.')


def book(
    db: Session,
    provider_id: str,
    service_offering_id: str,
    patient_id: str,
    on_date: date,
    at_time: time,
    fee: Optional[Decimal] = None,
    note: Optional[str] = None,
) -> Appointment:
    day_config, slot = require_slot(db, provider_id, service_offering_id, on_date, at_time)

    if fee is None:
        fee = day_config.consultation_fee if day_config.consultation_fee is not None else Decimal('0')

    appointment = Appointment(
        provider_id=provider_id,
        service_offering_id=service_offering_id,
        patient_id=patient_id,
        date=on_date,
        time=slot.time,
        duration_minutes=slot.duration_minutes,
        status=AppointmentStatus.SCHEDULED.value,
        fee=fee,
    )

    try:
        db.add(appointment)
        db.flush()
    except IntegrityError as exc:
        db.rollback()
        logger.info(
            'Slot conflict booking provider=%s offering=%s date=%s time=%s',
            provider_id,
            service_offering_id,
            on_date,
            at_time,
        )
        raise SlotConflict('This time slot was just booked. Please pick another time.') from exc
    except SQLAlchemyError:
        db.rollback()
        raise

    try:
        if note:
            append_note(db, appointment.id, patient_id, note)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(appointment)
    logger.info(
        'Booked appointment %s provider=%s offering=%s date=%s time=%s',
        appointment.id,
        provider_id,
        service_offering_id,
        on_date,
        at_time,
    )
    return appointment


def reschedule(
    db: Session,
    appointment_id: int,
    new_date: date,
    new_time: time,
    actor_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    current = AppointmentStatus(appointment.status)
    if current not in OPEN_STATUSES:
        raise AppointmentClosed(f'Appointment is {current.value} and can no longer be changed.')

    if appointment.date == new_date and appointment.time == new_time:
        raise InvalidSlot('Appointment is already booked at this time.')

    previous_date, previous_time = appointment.date, appointment.time
    _, slot = require_slot(db, appointment.provider_id, appointment.service_offering_id, new_date, new_time)

    try:
        result = db.execute(
            update(Appointment)
            .where(
                Appointment.id == appointment_id,
                Appointment.status.in_([status.value for status in OPEN_STATUSES]),
            )
            .values(date=new_date, time=slot.time, duration_minutes=slot.duration_minutes)
            .execution_options(synchronize_session=False)
        )
    except IntegrityError as exc:
        db.rollback()
        raise SlotConflict('This time slot was just booked. Please pick another time.') from exc
    except SQLAlchemyError:
        db.rollback()
        raise

    if result.rowcount != 1:
        db.rollback()
        raise AppointmentClosed('Appointment was closed before it could be rescheduled.')

    body = f'Rescheduled from {previous_date.isoformat()} {previous_time.strftime("%H:%M")}'
    body = f'{body}: {reason}' if reason else f'{body} by request'

    try:
        append_note(db, appointment_id, actor_id, body)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(appointment)
    logger.info('Rescheduled appointment %s to %s %s', appointment_id, new_date, new_time)
    return appointment

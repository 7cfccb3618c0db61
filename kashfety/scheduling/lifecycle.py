"""Appointment status lifecycle.

Status changes are applied with a conditional UPDATE keyed on the status the
caller observed, so the terminal-state check and the write happen in one
statement. Every change appends an audit note; notes are never edited.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Protocol, Union

from sqlalchemy import update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kashfety.core import config
from kashfety.models.appointment import Appointment, AppointmentNote, AppointmentStatus
from kashfety.scheduling.errors import (
    AppointmentClosed,
    AppointmentNotFound,
    InvalidTransition,
)

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[AppointmentStatus, frozenset[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
        AppointmentStatus.NO_SHOW,
    }),
}

OPEN_STATUSES = frozenset(ALLOWED_TRANSITIONS)
CLOSED_STATUSES = frozenset(set(AppointmentStatus) - OPEN_STATUSES)


@dataclass(frozen=True)
class ClinicalOutcome:
    diagnosis: Optional[str] = None
    treatment: Optional[str] = None
    prescription: Optional[str] = None
    follow_up_required: bool = False
    follow_up_date: Optional[date] = None


class MedicalRecordsGateway(Protocol):
    def record_outcome(self, appointment: Appointment, outcome: ClinicalOutcome) -> None:
        ...


class LoggingMedicalRecords:
    """Stand-in gateway used until a medical records service is wired in."""

    def record_outcome(self, appointment: Appointment, outcome: ClinicalOutcome) -> None:
        logger.info(
            'Clinical outcome recorded for appointment=%s patient=%s follow_up=%s',
            appointment.id,
            appointment.patient_id,
            outcome.follow_up_required,
        )


def parse_status(value: Union[str, AppointmentStatus]) -> AppointmentStatus:
    if isinstance(value, AppointmentStatus):
        return value
    try:
        return AppointmentStatus(value.strip().lower())
    except ValueError as exc:
        raise InvalidTransition(f'Unknown appointment status: {value!r}.') from exc


def check_transition(current: AppointmentStatus, target: AppointmentStatus) -> None:
    if current in CLOSED_STATUSES:
        raise AppointmentClosed(f'Appointment is {current.value} and can no longer be changed.')
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(f'Cannot change appointment from {current.value} to {target.value}.')


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if appointment is None:
        raise AppointmentNotFound(f'Appointment {appointment_id} not found.')
    return appointment


def append_note(db: Session, appointment_id: int, author_id: Optional[str], body: str) -> AppointmentNote:
    note = AppointmentNote(
        appointment_id=appointment_id,
        author_id=author_id,
        body=body[:config.MAX_APPOINTMENT_NOTE_LENGTH],
    )
    db.add(note)
    return note


def list_appointment_notes(db: Session, appointment_id: int) -> list[AppointmentNote]:
    return db.query(AppointmentNote).filter(
        AppointmentNote.appointment_id == appointment_id,
    ).order_by(AppointmentNote.id.asc()).all()


def transition(
    db: Session,
    appointment_id: int,
    new_status: Union[str, AppointmentStatus],
    actor_id: Optional[str] = None,
    reason: Optional[str] = None,
    outcome: Optional[ClinicalOutcome] = None,
    medical_records: Optional[MedicalRecordsGateway] = None,
) -> Appointment:
    target = parse_status(new_status)
    if outcome is not None and target is not AppointmentStatus.COMPLETED:
        raise InvalidTransition('A clinical outcome can only accompany completion.')

    appointment = get_appointment(db, appointment_id)
    current = AppointmentStatus(appointment.status)
    check_transition(current, target)

    values = {'status': target.value}
    if target is AppointmentStatus.CANCELLED:
        values['cancellation_reason'] = reason

    try:
        result = db.execute(
            update(Appointment)
            .where(Appointment.id == appointment_id, Appointment.status == current.value)
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            db.rollback()
            latest = get_appointment(db, appointment_id)
            check_transition(AppointmentStatus(latest.status), target)
            raise InvalidTransition('Appointment changed while updating; reload it and try again.')

        body = f'Status changed from {current.value} to {target.value}'
        if reason:
            body = f'{body}: {reason}'
        append_note(db, appointment_id, actor_id, body)

        db.commit()
    except SQLAlchemyError:
        db.rollback()
        raise

    db.refresh(appointment)
    logger.info('Appointment %s moved %s -> %s by %s', appointment_id, current.value, target.value, actor_id)

    if outcome is not None:
        gateway = medical_records or LoggingMedicalRecords()
        try:
            gateway.record_outcome(appointment, outcome)
        except Exception:
            # The appointment is already closed; the record can be re-sent.
            logger.exception('Medical record hand-off failed for appointment %s', appointment_id)

    return appointment


def list_provider_appointments(
    db: Session,
    provider_id: str,
    status: Optional[AppointmentStatus] = None,
    on_date: Optional[date] = None,
    limit: Optional[int] = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(Appointment.provider_id == provider_id)
    if status is not None:
        query = query.filter(Appointment.status == status.value)
    if on_date is not None:
        query = query.filter(Appointment.date == on_date)
    return query.order_by(
        Appointment.date.desc(),
        Appointment.time.desc(),
    ).limit(limit or config.APPOINTMENT_LIST_LIMIT).all()


def list_patient_appointments(
    db: Session,
    patient_id: str,
    status: Optional[AppointmentStatus] = None,
    limit: Optional[int] = None,
) -> list[Appointment]:
    query = db.query(Appointment).filter(Appointment.patient_id == patient_id)
    if status is not None:
        query = query.filter(Appointment.status == status.value)
    return query.order_by(
        Appointment.date.desc(),
        Appointment.time.desc(),
    ).limit(limit or config.APPOINTMENT_LIST_LIMIT).all()

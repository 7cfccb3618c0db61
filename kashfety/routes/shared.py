from datetime import date

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from kashfety.database import SessionLocal, ensure_appointment_schema, ensure_schedule_schema
from kashfety.scheduling.errors import (
    AppointmentClosed,
    AppointmentNotFound,
    InvalidConfig,
    InvalidSlot,
    InvalidTransition,
    NotBookable,
    SchedulingError,
    SlotConflict,
)
from kashfety.scheduling.lifecycle import LoggingMedicalRecords, MedicalRecordsGateway

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'

# Checked in order; subclasses come before their bases.
_ERROR_STATUS_CODES = [
    (InvalidConfig, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotBookable, status.HTTP_400_BAD_REQUEST),
    (InvalidSlot, status.HTTP_400_BAD_REQUEST),
    (SlotConflict, status.HTTP_409_CONFLICT),
    (AppointmentNotFound, status.HTTP_404_NOT_FOUND),
    (AppointmentClosed, status.HTTP_423_LOCKED),
    (InvalidTransition, status.HTTP_400_BAD_REQUEST),
]


def ensure_database_ready() -> None:
    try:
        ensure_schedule_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_today() -> date:
    return date.today()


def get_medical_records() -> MedicalRecordsGateway:
    return LoggingMedicalRecords()


def to_http_exception(exc: SchedulingError) -> HTTPException:
    for error_type, status_code in _ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=str(exc))
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )

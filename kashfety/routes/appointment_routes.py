from datetime import date, datetime, time
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kashfety.auth.dependencies import DOCTOR_ROLE, PATIENT_ROLE, Caller, get_current_caller
from kashfety.core import config
from kashfety.models.appointment import Appointment, AppointmentStatus
from kashfety.routes.shared import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    get_medical_records,
    get_today,
    to_http_exception,
)
from kashfety.scheduling.booking import book, reschedule
from kashfety.scheduling.errors import SchedulingError
from kashfety.scheduling.lifecycle import (
    ClinicalOutcome,
    MedicalRecordsGateway,
    get_appointment,
    list_appointment_notes,
    list_patient_appointments,
    list_provider_appointments,
    transition,
)

router = APIRouter(tags=['appointments'])


def _normalize_text(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > config.MAX_APPOINTMENT_NOTE_LENGTH:
        raise ValueError(f'Notes must be {config.MAX_APPOINTMENT_NOTE_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    provider_id: str
    service_offering_id: str
    patient_id: str | None = None
    date: date
    time: time
    fee: Decimal | None = Field(default=None, ge=0)
    notes: str | None = None

    @field_validator('provider_id', 'service_offering_id')
    @classmethod
    def validate_identifier(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Identifier is required.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_text(value)


class ClinicalOutcomeRequest(BaseModel):
    diagnosis: str | None = None
    treatment: str | None = None
    prescription: str | None = None
    follow_up_required: bool = False
    follow_up_date: date | None = None

    def to_outcome(self) -> ClinicalOutcome:
        return ClinicalOutcome(
            diagnosis=self.diagnosis,
            treatment=self.treatment,
            prescription=self.prescription,
            follow_up_required=self.follow_up_required,
            follow_up_date=self.follow_up_date,
        )


class TransitionRequest(BaseModel):
    status: AppointmentStatus
    reason: str | None = None
    outcome: ClinicalOutcomeRequest | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_text(value)


class RescheduleRequest(BaseModel):
    date: date
    time: time
    reason: str | None = None

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str | None) -> str | None:
        return _normalize_text(value)


class AppointmentNoteResponse(BaseModel):
    id: int
    author_id: str | None = None
    body: str
    created_at: datetime

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    provider_id: str
    service_offering_id: str
    patient_id: str
    date: date
    time: time
    duration_minutes: int
    status: str
    fee: Decimal | None = None
    cancellation_reason: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


class AppointmentDetailResponse(AppointmentResponse):
    notes: list[AppointmentNoteResponse] = []


def _require_participant(caller: Caller, appointment: Appointment) -> None:
    if caller.is_staff:
        return
    if caller.role == PATIENT_ROLE and caller.caller_id == appointment.patient_id:
        return
    if caller.role == DOCTOR_ROLE and caller.caller_id == appointment.provider_id:
        return
    raise HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail='Only participants of this appointment can access it.',
    )


def _load_appointment(db: Session, appointment_id: int) -> Appointment:
    try:
        return get_appointment(db, appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    caller: Caller = Depends(get_current_caller),
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
):
    if caller.role == PATIENT_ROLE:
        if data.patient_id and data.patient_id != caller.caller_id:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail='Patients can only book appointments for themselves.',
            )
        patient_id = caller.caller_id
    elif caller.is_staff:
        if not data.patient_id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Patient ID is required when booking on behalf of a patient.',
            )
        patient_id = data.patient_id
    else:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only patients or center staff can book appointments.',
        )

    if data.date < today:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Appointments must be scheduled in the future.',
        )

    ensure_database_ready()

    try:
        return book(
            db,
            data.provider_id,
            data.service_offering_id,
            patient_id,
            data.date,
            data.time,
            fee=data.fee,
            note=data.notes,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/provider/{provider_id}', response_model=list[AppointmentResponse])
def read_provider_appointments(
    provider_id: str,
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    on_date: date | None = Query(default=None, alias='date'),
    limit: int = Query(default=config.APPOINTMENT_LIST_LIMIT, ge=1, le=500),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    if not caller.is_staff and not (caller.role == DOCTOR_ROLE and caller.caller_id == provider_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the provider or center staff can view these appointments.',
        )

    ensure_database_ready()

    try:
        return list_provider_appointments(db, provider_id, status=status_filter, on_date=on_date, limit=limit)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/patient/{patient_id}', response_model=list[AppointmentResponse])
def read_patient_appointments(
    patient_id: str,
    status_filter: AppointmentStatus | None = Query(default=None, alias='status'),
    limit: int = Query(default=config.APPOINTMENT_LIST_LIMIT, ge=1, le=500),
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    if not caller.is_staff and not (caller.role == PATIENT_ROLE and caller.caller_id == patient_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Patients can only view their own appointments.',
        )

    ensure_database_ready()

    try:
        return list_patient_appointments(db, patient_id, status=status_filter, limit=limit)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{appointment_id}', response_model=AppointmentDetailResponse)
def read_appointment(
    appointment_id: int,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = _load_appointment(db, appointment_id)
    _require_participant(caller, appointment)

    try:
        notes = list_appointment_notes(db, appointment_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    summary = AppointmentResponse.model_validate(appointment)
    return AppointmentDetailResponse(
        **summary.model_dump(),
        notes=[AppointmentNoteResponse.model_validate(note) for note in notes],
    )


@router.post('/{appointment_id}/transition', response_model=AppointmentResponse)
def change_appointment_status(
    appointment_id: int,
    data: TransitionRequest,
    caller: Caller = Depends(get_current_caller),
    medical_records: MedicalRecordsGateway = Depends(get_medical_records),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    appointment = _load_appointment(db, appointment_id)
    _require_participant(caller, appointment)

    if caller.role == PATIENT_ROLE and data.status is not AppointmentStatus.CANCELLED:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Patients can only cancel their appointments.',
        )

    try:
        return transition(
            db,
            appointment_id,
            data.status,
            actor_id=caller.caller_id,
            reason=data.reason,
            outcome=data.outcome.to_outcome() if data.outcome else None,
            medical_records=medical_records,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    data: RescheduleRequest,
    caller: Caller = Depends(get_current_caller),
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
):
    if data.date < today:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Appointments must be scheduled in the future.',
        )

    ensure_database_ready()

    appointment = _load_appointment(db, appointment_id)
    _require_participant(caller, appointment)

    try:
        return reschedule(
            db,
            appointment_id,
            data.date,
            data.time,
            actor_id=caller.caller_id,
            reason=data.reason,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

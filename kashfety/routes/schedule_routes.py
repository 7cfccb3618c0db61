from datetime import date, time
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kashfety.auth.dependencies import Caller, get_current_caller, require_schedule_access
from kashfety.core import config
from kashfety.routes.shared import database_unavailable, ensure_database_ready, get_db, to_http_exception
from kashfety.scheduling.errors import SchedulingError
from kashfety.scheduling.overrides import list_date_overrides, remove_date_override, upsert_date_override
from kashfety.scheduling.slots import MAX_SLOT_DURATION_MINUTES, DayConfig, build_break_window
from kashfety.scheduling.weekly import (
    WeeklySchedule,
    get_weekly_schedule,
    replace_weekly_schedule,
    switch_service_offering,
)

router = APIRouter(tags=['schedules'])

MAX_SCHEDULE_NOTES_LENGTH = 300


def _normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_SCHEDULE_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_SCHEDULE_NOTES_LENGTH} characters or fewer.')

    return normalized


class DayScheduleRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    is_available: bool = False
    start_time: time | None = None
    end_time: time | None = None
    break_start: time | None = None
    break_end: time | None = None
    slot_duration_minutes: int = Field(default=config.DEFAULT_SLOT_DURATION_MINUTES, le=MAX_SLOT_DURATION_MINUTES)
    consultation_fee: Decimal | None = None
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    def to_day_config(self) -> DayConfig | None:
        if not self.is_available:
            return None
        return DayConfig(
            start_time=self.start_time,
            end_time=self.end_time,
            slot_duration_minutes=self.slot_duration_minutes,
            break_window=build_break_window(self.break_start, self.break_end),
            consultation_fee=self.consultation_fee,
            notes=self.notes or '',
        )


class ReplaceWeekRequest(BaseModel):
    days: list[DayScheduleRequest]

    @field_validator('days')
    @classmethod
    def validate_unique_days(cls, value: list[DayScheduleRequest]) -> list[DayScheduleRequest]:
        seen = [day.day_of_week for day in value]
        if len(seen) != len(set(seen)):
            raise ValueError('Each day of the week may appear only once.')
        return value

    def to_days(self) -> dict[int, DayConfig | None]:
        return {day.day_of_week: day.to_day_config() for day in self.days}


class DayScheduleResponse(BaseModel):
    day_of_week: int
    is_available: bool
    start_time: time | None = None
    end_time: time | None = None
    break_start: time | None = None
    break_end: time | None = None
    slot_duration_minutes: int | None = None
    consultation_fee: Decimal | None = None
    notes: str | None = None


class WeeklyScheduleResponse(BaseModel):
    provider_id: str
    service_offering_id: str
    days: list[DayScheduleResponse]


class SwitchOfferingRequest(BaseModel):
    current_service_offering_id: str | None = None
    pending_days: list[DayScheduleRequest] | None = None
    next_service_offering_id: str


class OfferingSwitchResponse(BaseModel):
    schedule: WeeklyScheduleResponse
    autosaved: bool
    autosave_error: str | None = None


class DateOverrideRequest(BaseModel):
    is_available: bool = False
    start_time: time | None = None
    end_time: time | None = None
    break_start: time | None = None
    break_end: time | None = None
    slot_duration_minutes: int | None = Field(default=None, le=MAX_SLOT_DURATION_MINUTES)
    consultation_fee: Decimal | None = None
    notes: str | None = None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return _normalize_notes(value)

    def to_day_config(self) -> DayConfig | None:
        if not self.is_available:
            return None
        return DayConfig(
            start_time=self.start_time,
            end_time=self.end_time,
            slot_duration_minutes=self.slot_duration_minutes or 0,
            break_window=build_break_window(self.break_start, self.break_end),
            consultation_fee=self.consultation_fee,
            notes=self.notes or '',
        )


class DateOverrideResponse(BaseModel):
    id: int
    date: date
    is_available: bool
    start_time: time | None = None
    end_time: time | None = None
    break_start: time | None = None
    break_end: time | None = None
    slot_duration_minutes: int | None = None
    consultation_fee: Decimal | None = None
    notes: str | None = None

    class Config:
        from_attributes = True


def build_weekly_response(
    provider_id: str,
    service_offering_id: str,
    schedule: WeeklySchedule,
) -> WeeklyScheduleResponse:
    days = []
    for day_of_week, day_config in sorted(schedule.items()):
        if day_config is None:
            days.append(DayScheduleResponse(day_of_week=day_of_week, is_available=False))
            continue

        window = day_config.break_window
        days.append(
            DayScheduleResponse(
                day_of_week=day_of_week,
                is_available=True,
                start_time=day_config.start_time,
                end_time=day_config.end_time,
                break_start=window.start if window else None,
                break_end=window.end if window else None,
                slot_duration_minutes=day_config.slot_duration_minutes,
                consultation_fee=day_config.consultation_fee,
                notes=day_config.notes or None,
            )
        )

    return WeeklyScheduleResponse(provider_id=provider_id, service_offering_id=service_offering_id, days=days)


@router.get('/{provider_id}/{service_offering_id}/week', response_model=WeeklyScheduleResponse)
def read_weekly_schedule(
    provider_id: str,
    service_offering_id: str,
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        schedule = get_weekly_schedule(db, provider_id, service_offering_id)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return build_weekly_response(provider_id, service_offering_id, schedule)


@router.put('/{provider_id}/{service_offering_id}/week', response_model=WeeklyScheduleResponse)
def replace_week(
    provider_id: str,
    service_offering_id: str,
    data: ReplaceWeekRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    require_schedule_access(caller, provider_id)
    ensure_database_ready()

    try:
        schedule = replace_weekly_schedule(db, provider_id, service_offering_id, data.to_days())
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return build_weekly_response(provider_id, service_offering_id, schedule)


@router.post('/{provider_id}/switch', response_model=OfferingSwitchResponse)
def switch_offering(
    provider_id: str,
    data: SwitchOfferingRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    require_schedule_access(caller, provider_id)
    ensure_database_ready()

    pending_days = None
    autosave_error = None
    if data.pending_days is not None:
        try:
            pending_days = ReplaceWeekRequest(days=data.pending_days).to_days()
        except (SchedulingError, ValueError) as exc:
            # Unsaved edits that cannot be parsed are reported, not fatal.
            autosave_error = str(exc)

    try:
        result = switch_service_offering(
            db,
            provider_id,
            data.current_service_offering_id,
            pending_days,
            data.next_service_offering_id,
        )
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return OfferingSwitchResponse(
        schedule=build_weekly_response(provider_id, result.service_offering_id, result.schedule),
        autosaved=result.autosaved,
        autosave_error=result.autosave_error or autosave_error,
    )


@router.get('/{provider_id}/{service_offering_id}/overrides', response_model=list[DateOverrideResponse])
def read_date_overrides(
    provider_id: str,
    service_offering_id: str,
    from_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return list_date_overrides(db, provider_id, service_offering_id, from_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{provider_id}/{service_offering_id}/overrides/{override_date}', response_model=DateOverrideResponse)
def save_date_override(
    provider_id: str,
    service_offering_id: str,
    override_date: date,
    data: DateOverrideRequest,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    require_schedule_access(caller, provider_id)
    ensure_database_ready()

    try:
        return upsert_date_override(
            db,
            provider_id,
            service_offering_id,
            override_date,
            data.to_day_config(),
            notes=data.notes,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.delete('/{provider_id}/{service_offering_id}/overrides/{override_date}', status_code=status.HTTP_204_NO_CONTENT)
def delete_date_override(
    provider_id: str,
    service_offering_id: str,
    override_date: date,
    caller: Caller = Depends(get_current_caller),
    db: Session = Depends(get_db),
):
    require_schedule_access(caller, provider_id)
    ensure_database_ready()

    try:
        removed = remove_date_override(db, provider_id, service_offering_id, override_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    if not removed:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Date override not found.',
        )

from datetime import date, time, timedelta

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from kashfety.core import config
from kashfety.routes.shared import database_unavailable, ensure_database_ready, get_db, get_today
from kashfety.scheduling.availability import list_available_dates, resolve_availability

router = APIRouter(tags=['availability'])


class SlotResponse(BaseModel):
    time: time
    end_time: time
    duration_minutes: int


class AvailableSlotsResponse(BaseModel):
    provider_id: str
    service_offering_id: str
    date: date
    slots: list[SlotResponse]


class AvailableDatesResponse(BaseModel):
    provider_id: str
    service_offering_id: str
    start_date: date
    end_date: date
    available_dates: list[date]


@router.get('/{provider_id}/{service_offering_id}/slots', response_model=AvailableSlotsResponse)
def list_open_slots(
    provider_id: str,
    service_offering_id: str,
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        slots = resolve_availability(db, provider_id, service_offering_id, slot_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return AvailableSlotsResponse(
        provider_id=provider_id,
        service_offering_id=service_offering_id,
        date=slot_date,
        slots=[
            SlotResponse(time=slot.time, end_time=slot.end_time, duration_minutes=slot.duration_minutes)
            for slot in slots
        ],
    )


@router.get('/{provider_id}/{service_offering_id}/dates', response_model=AvailableDatesResponse)
def list_open_dates(
    provider_id: str,
    service_offering_id: str,
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    today: date = Depends(get_today),
    db: Session = Depends(get_db),
):
    start_date = start_date or today
    end_date = end_date or start_date + timedelta(days=config.AVAILABLE_DATES_RANGE_DAYS)

    if end_date < start_date:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='End date must not be before start date.',
        )

    if (end_date - start_date).days > config.AVAILABLE_DATES_RANGE_DAYS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f'Date range cannot exceed {config.AVAILABLE_DATES_RANGE_DAYS} days.',
        )

    ensure_database_ready()

    try:
        available_dates = list_available_dates(db, provider_id, service_offering_id, start_date, end_date)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return AvailableDatesResponse(
        provider_id=provider_id,
        service_offering_id=service_offering_id,
        start_date=start_date,
        end_date=end_date,
        available_dates=available_dates,
    )

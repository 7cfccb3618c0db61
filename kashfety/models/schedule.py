"""Recurring weekly schedule and date override model definitions."""

from datetime import datetime

from sqlalchemy import Boolean, Column, Date, DateTime, Index, Integer, Numeric, String, Time
from kashfety.database import Base


class DaySchedule(Base):
    """One weekday of a provider's recurring pattern for a service offering.

    ``day_of_week`` uses 0 for Sunday through 6 for Saturday.
    """
    __tablename__ = "day_schedules"
    __table_args__ = (
        Index("uq_day_schedules_weekday", "provider_id", "service_offering_id", "day_of_week", unique=True),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(String, nullable=False, index=True)
    service_offering_id = Column(String, nullable=False)
    day_of_week = Column(Integer, nullable=False)
    is_available = Column(Boolean, nullable=False, default=False)
    start_time = Column(Time)
    end_time = Column(Time)
    break_start = Column(Time)
    break_end = Column(Time)
    slot_duration_minutes = Column(Integer, nullable=False, default=30)
    consultation_fee = Column(Numeric(10, 2))
    notes = Column(String)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class DateOverride(Base):
    """Exception replacing the weekly pattern for one calendar date."""
    __tablename__ = "date_overrides"
    __table_args__ = (
        Index("uq_date_overrides_date", "provider_id", "service_offering_id", "date", unique=True),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(String, nullable=False, index=True)
    service_offering_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    is_available = Column(Boolean, nullable=False, default=False)
    start_time = Column(Time)
    end_time = Column(Time)
    break_start = Column(Time)
    break_end = Column(Time)
    slot_duration_minutes = Column(Integer)
    consultation_fee = Column(Numeric(10, 2))
    notes = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

"""Appointment model definitions."""

from datetime import datetime
from enum import Enum

from sqlalchemy import Column, Date, DateTime, ForeignKey, Index, Integer, Numeric, String, Time, text
from sqlalchemy.orm import relationship
from kashfety.database import Base


class AppointmentStatus(str, Enum):
    SCHEDULED = "scheduled"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no_show"


_ACTIVE_SLOT_PREDICATE = text("status <> 'cancelled'")


class Appointment(Base):
    """Represents a booked appointment. Rows are never deleted; cancellation is a status."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            "uq_appointments_active_slot",
            "provider_id",
            "service_offering_id",
            "date",
            "time",
            unique=True,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
        ),
        Index("idx_appointments_provider_date", "provider_id", "date"),
        Index("idx_appointments_patient", "patient_id"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(String, nullable=False)
    service_offering_id = Column(String, nullable=False)
    patient_id = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    time = Column(Time, nullable=False)
    duration_minutes = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=AppointmentStatus.SCHEDULED.value)
    fee = Column(Numeric(10, 2))
    cancellation_reason = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)

    notes = relationship(
        "AppointmentNote",
        back_populates="appointment",
        order_by="AppointmentNote.id",
    )


class AppointmentNote(Base):
    """Immutable audit log entry attached to an appointment."""
    __tablename__ = "appointment_notes"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, index=True)
    author_id = Column(String)
    body = Column(String, nullable=False)
    created_at = Column(DateTime, default=datetime.utcnow)

    appointment = relationship("Appointment", back_populates="notes")

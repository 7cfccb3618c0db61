import os
from datetime import date, time
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite://')

from kashfety.database import Base  # noqa: E402
from kashfety.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from kashfety.models.schedule import DaySchedule  # noqa: E402

PROVIDER_ID = 'doctor-1'
SERVICE_ID = 'consultation'
PATIENT_ID = 'patient-1'
MONDAY = date(2026, 1, 5)
TUESDAY = date(2026, 1, 6)


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite://',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def file_session_factory(tmp_path):
    engine = create_engine(
        f'sqlite:///{tmp_path / "booking.db"}',
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    seed_session = factory()
    try:
        add_monday_schedule(seed_session)
    finally:
        seed_session.close()

    try:
        yield factory
    finally:
        engine.dispose()


def add_monday_schedule(session) -> DaySchedule:
    """Monday 09:00-12:00, 30 minute slots, break 10:00-10:30."""
    row = DaySchedule(
        provider_id=PROVIDER_ID,
        service_offering_id=SERVICE_ID,
        day_of_week=1,
        is_available=True,
        start_time=time(9, 0),
        end_time=time(12, 0),
        break_start=time(10, 0),
        break_end=time(10, 30),
        slot_duration_minutes=30,
        consultation_fee=Decimal('150.00'),
    )
    session.add(row)
    session.commit()
    return row


@pytest.fixture
def monday_schedule(db) -> DaySchedule:
    return add_monday_schedule(db)


@pytest.fixture
def make_appointment(db):
    def _make(
        slot_time: time = time(9, 0),
        status: AppointmentStatus = AppointmentStatus.SCHEDULED,
        slot_date: date = MONDAY,
        patient_id: str = PATIENT_ID,
    ) -> Appointment:
        appointment = Appointment(
            provider_id=PROVIDER_ID,
            service_offering_id=SERVICE_ID,
            patient_id=patient_id,
            date=slot_date,
            time=slot_time,
            duration_minutes=30,
            status=status.value,
            fee=Decimal('150.00'),
        )
        db.add(appointment)
        db.commit()
        db.refresh(appointment)
        return appointment

    return _make

from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker

from kashfety.core import config


def build_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith('sqlite'):
        # Sessions are handed across FastAPI's threadpool workers.
        connect_args = {'check_same_thread': False, 'timeout': 30}
    return create_engine(database_url, echo=config.SQL_ECHO, connect_args=connect_args)


engine = build_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_schedule_schema_checked = False
_appointment_schema_checked = False


def ensure_schedule_schema(bind: Engine | None = None) -> None:
    global _schedule_schema_checked

    if _schedule_schema_checked:
        return

    bind = bind or engine

    with _schema_lock:
        if _schedule_schema_checked:
            return

        inspector = inspect(bind)

        if 'day_schedules' not in inspector.get_table_names():
            _schedule_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('day_schedules')}
        migration_steps = [
            ('break_start', 'ALTER TABLE day_schedules ADD COLUMN break_start TIME'),
            ('break_end', 'ALTER TABLE day_schedules ADD COLUMN break_end TIME'),
            ('consultation_fee', 'ALTER TABLE day_schedules ADD COLUMN consultation_fee NUMERIC(10, 2)'),
            ('notes', 'ALTER TABLE day_schedules ADD COLUMN notes VARCHAR'),
        ]

        with bind.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_day_schedules_weekday '
                    'ON day_schedules(provider_id, service_offering_id, day_of_week)'
                )
            )
            if 'date_overrides' in inspector.get_table_names():
                connection.execute(
                    text(
                        'CREATE UNIQUE INDEX IF NOT EXISTS uq_date_overrides_date '
                        'ON date_overrides(provider_id, service_offering_id, date)'
                    )
                )

        _schedule_schema_checked = True


def ensure_appointment_schema(bind: Engine | None = None) -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    bind = bind or engine

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(bind)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('fee', 'ALTER TABLE appointments ADD COLUMN fee NUMERIC(10, 2)'),
            ('cancellation_reason', 'ALTER TABLE appointments ADD COLUMN cancellation_reason VARCHAR'),
            ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP'),
        ]

        with bind.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            # Storage-level guard: one live appointment per provider/service/date/time.
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot '
                    'ON appointments(provider_id, service_offering_id, date, time) '
                    "WHERE status <> 'cancelled'"
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_provider_date ON appointments(provider_id, date)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_patient ON appointments(patient_id)')
            )

        _appointment_schema_checked = True

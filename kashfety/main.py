import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from kashfety.core import config
from kashfety.database import Base, engine, ensure_appointment_schema, ensure_schedule_schema
from kashfety.models import appointment, schedule  # noqa: F401
from kashfety.routes import appointment_routes, availability_routes, schedule_routes

config.validate_runtime_config()

app = FastAPI(title='Kashfety Booking Engine')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_schedule_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Kashfety Booking Engine Running'}


app.include_router(availability_routes.router, prefix='/availability')
app.include_router(schedule_routes.router, prefix='/schedules')
app.include_router(appointment_routes.router, prefix='/appointments')

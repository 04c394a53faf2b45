import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from vastis.core import config
from vastis.database import (
    Base,
    SchemaMigrationError,
    engine,
    ensure_appointment_schema,
    ensure_availability_schema,
    ensure_insurance_schema,
)
from vastis.models import appointment, availability, insurance, location, practitioner, service_type, user  # noqa: F401
from vastis.routes import appointment_routes, availability_routes, insurance_routes, practitioner_routes

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s %(levelname)s %(name)s: %(message)s',
)

app = FastAPI(title='Vastis Booking API')

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
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_availability_schema()
        ensure_appointment_schema()
        ensure_insurance_schema()
    except SchemaMigrationError:
        logger.exception('Database migration blocked. Resolve the double-booked appointments listed above.')
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Vastis Booking API Running'}


app.include_router(availability_routes.router, prefix='/availability')
app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(practitioner_routes.router, prefix='/practitioners')
app.include_router(insurance_routes.router, prefix='/insurance')

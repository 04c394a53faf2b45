import logging
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from vastis.core import config


engine = create_engine(config.DATABASE_URL, echo=config.SQL_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

logger = logging.getLogger(__name__)

_schema_lock = Lock()
_availability_schema_checked = False
_appointment_schema_checked = False
_insurance_schema_checked = False


class SchemaMigrationError(RuntimeError):
    """Existing rows prevent a schema step; the data has to be fixed by hand."""


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'availability_windows' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('availability_windows')}
        migration_steps = [
            ('created_at', 'ALTER TABLE availability_windows ADD COLUMN created_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE INDEX IF NOT EXISTS idx_availability_windows_lookup '
                    'ON availability_windows(practitioner_id, location_id, weekday)'
                )
            )

        _availability_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('duration_minutes', 'ALTER TABLE appointments ADD COLUMN duration_minutes INTEGER'),
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
            ('insurance_claim_id', 'ALTER TABLE appointments ADD COLUMN insurance_claim_id INTEGER'),
            ('updated_at', 'ALTER TABLE appointments ADD COLUMN updated_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            # Tables created before the booking guard existed need the partial unique index too.
            _check_no_double_bookings(connection)
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot '
                    'ON appointments(practitioner_id, location_id, appointment_date, appointment_time) '
                    "WHERE status <> 'cancelled'"
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_patient ON appointments(patient_id, appointment_date)')
            )

        _appointment_schema_checked = True


def _check_no_double_bookings(connection) -> None:
    duplicates = connection.execute(
        text(
            'SELECT practitioner_id, location_id, appointment_date, appointment_time, COUNT(*) AS bookings '
            'FROM appointments '
            "WHERE status <> 'cancelled' "
            'GROUP BY practitioner_id, location_id, appointment_date, appointment_time '
            'HAVING COUNT(*) > 1'
        )
    ).all()
    if not duplicates:
        return

    slots = ', '.join(
        f'practitioner {row.practitioner_id} at location {row.location_id} on '
        f'{row.appointment_date} {row.appointment_time} ({row.bookings} bookings)'
        for row in duplicates
    )
    logger.error(
        'Cannot create uq_appointments_active_slot: %s active slots are double-booked: %s. '
        'Cancel the extra appointments, then restart.',
        len(duplicates),
        slots,
    )
    raise SchemaMigrationError(f'{len(duplicates)} active appointment slots are double-booked.')


def ensure_insurance_schema() -> None:
    global _insurance_schema_checked

    if _insurance_schema_checked:
        return

    with _schema_lock:
        if _insurance_schema_checked:
            return

        inspector = inspect(engine)

        if 'patient_insurance' not in inspector.get_table_names():
            _insurance_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('patient_insurance')}
        migration_steps = [
            ('group_number', 'ALTER TABLE patient_insurance ADD COLUMN group_number VARCHAR'),
            ('coverage_details', 'ALTER TABLE patient_insurance ADD COLUMN coverage_details VARCHAR'),
            ('created_at', 'ALTER TABLE patient_insurance ADD COLUMN created_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))

        _insurance_schema_checked = True

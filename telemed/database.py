import logging
from threading import Lock

from sqlalchemy import DateTime, Integer, create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from telemed.core import config
from telemed.scheduling.timezones import CivilClock

logger = logging.getLogger(__name__)

engine = create_engine(config.DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_schedule_schema_checked = False
_appointment_schema_checked = False
_payment_schema_checked = False


def civil_clock() -> CivilClock:
    return CivilClock(config.CIVIL_TIMEZONE, config.CIVIL_FALLBACK_OFFSET_MINUTES)


def _apply_migration_steps(bind, table_name: str, migration_steps, index_statements, data_steps=()) -> None:
    inspector = inspect(bind)

    if table_name not in inspector.get_table_names():
        return

    existing_columns = {column['name'] for column in inspector.get_columns(table_name)}

    with bind.begin() as connection:
        for column_name, statement in migration_steps:
            if column_name not in existing_columns:
                connection.execute(text(statement))
        for data_step in data_steps:
            data_step(connection)
        for statement in index_statements:
            connection.execute(text(statement))


def _backfill_slot_keys(connection, clock: CivilClock) -> None:
    """Give slot-holding rows written before ``slot_key`` existed their civil key.

    When legacy data already double-books a slot the oldest row keeps the key
    and the others are left without one so the unique index can be built.
    """
    taken = {
        (doctor_id, slot_key)
        for doctor_id, slot_key in connection.execute(text(
            'SELECT doctor_id, slot_key FROM appointments WHERE slot_key IS NOT NULL'
        ))
    }
    rows = connection.execute(
        text(
            'SELECT id, doctor_id, scheduled_at FROM appointments '
            "WHERE slot_key IS NULL AND status NOT IN ('cancelled', 'rescheduled') "
            'ORDER BY id'
        ).columns(id=Integer, doctor_id=Integer, scheduled_at=DateTime)
    ).all()

    for appointment_id, doctor_id, scheduled_at in rows:
        slot_key = clock.slot_key_from_utc(scheduled_at)
        if (doctor_id, slot_key) in taken:
            logger.warning(
                'Appointment %s duplicates slot %s of doctor %s; leaving it without a slot key.',
                appointment_id,
                slot_key,
                doctor_id,
            )
            continue
        connection.execute(
            text('UPDATE appointments SET slot_key = :slot_key WHERE id = :id'),
            {'slot_key': slot_key, 'id': appointment_id},
        )
        taken.add((doctor_id, slot_key))

    if rows:
        logger.info('Backfilled slot keys for %s legacy appointment row(s).', len(rows))


def ensure_schedule_schema(bind=None) -> None:
    global _schedule_schema_checked

    if _schedule_schema_checked and bind is None:
        return

    with _schema_lock:
        if _schedule_schema_checked and bind is None:
            return

        _apply_migration_steps(
            bind or engine,
            'doctor_schedules',
            [
                ('video_call_link', 'ALTER TABLE doctor_schedules ADD COLUMN video_call_link VARCHAR'),
                ('is_approved', 'ALTER TABLE doctor_schedules ADD COLUMN is_approved BOOLEAN DEFAULT FALSE'),
            ],
            [
                'CREATE INDEX IF NOT EXISTS idx_doctor_schedules_doctor_date ON doctor_schedules(doctor_id, date)',
            ],
        )

        if bind is None:
            _schedule_schema_checked = True


def ensure_appointment_schema(bind=None, clock: CivilClock | None = None) -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked and bind is None:
        return

    with _schema_lock:
        if _appointment_schema_checked and bind is None:
            return

        clock = clock or civil_clock()
        _apply_migration_steps(
            bind or engine,
            'appointments',
            [
                ('slot_key', 'ALTER TABLE appointments ADD COLUMN slot_key VARCHAR(16)'),
                ('schedule_id', 'ALTER TABLE appointments ADD COLUMN schedule_id INTEGER'),
                ('patient_note', 'ALTER TABLE appointments ADD COLUMN patient_note VARCHAR'),
                ('doctor_note', 'ALTER TABLE appointments ADD COLUMN doctor_note VARCHAR'),
                ('created_at', 'ALTER TABLE appointments ADD COLUMN created_at TIMESTAMP'),
            ],
            [
                'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_doctor_slot_key '
                'ON appointments(doctor_id, slot_key)',
                'CREATE INDEX IF NOT EXISTS idx_appointments_doctor_scheduled '
                'ON appointments(doctor_id, scheduled_at)',
            ],
            data_steps=[lambda connection: _backfill_slot_keys(connection, clock)],
        )

        if bind is None:
            _appointment_schema_checked = True


def ensure_payment_schema(bind=None) -> None:
    global _payment_schema_checked

    if _payment_schema_checked and bind is None:
        return

    with _schema_lock:
        if _payment_schema_checked and bind is None:
            return

        _apply_migration_steps(
            bind or engine,
            'payments',
            [
                ('payment_intent_id', 'ALTER TABLE payments ADD COLUMN payment_intent_id VARCHAR'),
                ('invoice_id', 'ALTER TABLE payments ADD COLUMN invoice_id INTEGER'),
                ('is_invoice_generated', 'ALTER TABLE payments ADD COLUMN is_invoice_generated BOOLEAN DEFAULT FALSE'),
            ],
            [
                'CREATE INDEX IF NOT EXISTS idx_payments_intent ON payments(payment_intent_id)',
            ],
        )

        if bind is None:
            _payment_schema_checked = True

from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from therapy_backend.core import config


engine = create_engine(config.DATABASE_URL, echo=config.SQL_ECHO, pool_pre_ping=True)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    expire_on_commit=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False
_busy_interval_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_booking_schema() -> None:
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)

        if 'bookings' not in inspector.get_table_names():
            _booking_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('bookings')}
        migration_steps = [
            ('service_name', 'ALTER TABLE bookings ADD COLUMN service_name VARCHAR'),
            ('notes', 'ALTER TABLE bookings ADD COLUMN notes VARCHAR'),
            ('updated_at', 'ALTER TABLE bookings ADD COLUMN updated_at TIMESTAMP'),
            ('rating_submitted', 'ALTER TABLE bookings ADD COLUMN rating_submitted BOOLEAN DEFAULT FALSE'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_therapist_session ON bookings(therapist_id, session_time)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_client_session ON bookings(client_id, session_time)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_updated_at ON bookings(updated_at)')
            )

        _booking_schema_checked = True


def ensure_busy_interval_schema() -> None:
    global _busy_interval_schema_checked

    if _busy_interval_schema_checked:
        return

    with _schema_lock:
        if _busy_interval_schema_checked:
            return

        inspector = inspect(engine)

        if 'busy_intervals' not in inspector.get_table_names():
            _busy_interval_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_busy_intervals_range ON busy_intervals(therapist_id, start_time, end_time)')
            )

        _busy_interval_schema_checked = True

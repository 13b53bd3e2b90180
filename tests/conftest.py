import os
from datetime import datetime, timedelta, timezone

os.environ.setdefault('DATABASE_URL', 'sqlite:///:memory:')
os.environ['CLINIC_TIMEZONE'] = 'UTC'
os.environ['SLOT_INCREMENT_MINUTES'] = '30'
os.environ['SESSION_DURATION_MINUTES'] = '60'
os.environ['MIN_BOOKING_LEAD_MINUTES'] = '0'

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402

from therapy_backend.database import Base  # noqa: E402
from therapy_backend.models import availability, busy_interval, feedback, presence  # noqa: E402,F401
from therapy_backend.models.booking import Booking, BookingStatus, PaymentStatus  # noqa: E402
from therapy_backend.models.therapist import TherapistProfile  # noqa: E402
from therapy_backend.models.user import User  # noqa: E402


@pytest.fixture
def db():
    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def _add_user(db, email: str, name: str, role: str) -> User:
    user = User(email=email, name=name, role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


@pytest.fixture
def therapist(db) -> TherapistProfile:
    user = _add_user(db, 'therapist@example.com', 'Dr. Asha Mehta', 'therapist')
    profile = TherapistProfile(id=user.id, name=user.name, specialization='Anxiety', hourly_rate=2500.0)
    db.add(profile)
    db.commit()
    return profile


@pytest.fixture
def therapist_user(db, therapist) -> User:
    return db.query(User).filter(User.id == therapist.id).one()


@pytest.fixture
def client_user(db) -> User:
    return _add_user(db, 'client@example.com', 'Rahul Sharma', 'client')


@pytest.fixture
def other_client(db) -> User:
    return _add_user(db, 'other@example.com', 'Priya Gupta', 'client')


@pytest.fixture
def admin_user(db) -> User:
    return _add_user(db, 'admin@example.com', 'Clinic Admin', 'admin')


@pytest.fixture
def add_booking(db):
    def _add(
        therapist: TherapistProfile,
        client: User,
        start: datetime,
        duration_minutes: int = 60,
        status: BookingStatus = BookingStatus.CONFIRMED,
    ) -> Booking:
        booking = Booking(
            client_id=client.id,
            client_name=client.name,
            client_email=client.email,
            therapist_id=therapist.id,
            therapist_name=therapist.name,
            session_time=start.astimezone(timezone.utc),
            duration_minutes=duration_minutes,
            status=status,
            payment_status=PaymentStatus.PAID,
            amount=2500.0,
            created_at=start - timedelta(days=1),
        )
        db.add(booking)
        db.commit()
        return booking

    return _add

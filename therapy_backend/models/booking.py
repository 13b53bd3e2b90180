"""Booking model definitions."""

import enum
from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, Enum, Float, ForeignKey, Integer, String
from therapy_backend.database import Base


class BookingStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"


# Statuses whose session window blocks the therapist's calendar.
OCCUPYING_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED, BookingStatus.COMPLETED)
TERMINAL_STATUSES = (BookingStatus.COMPLETED, BookingStatus.CANCELLED)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _enum_values(enum_class) -> list[str]:
    return [member.value for member in enum_class]


class Booking(Base):
    """A client's session with a therapist."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    client_name = Column(String, nullable=False, default="")
    client_email = Column(String, nullable=False, default="")
    therapist_id = Column(Integer, ForeignKey("therapists.id"), nullable=False)
    therapist_name = Column(String, nullable=False, default="")

    session_time = Column(DateTime(timezone=True), nullable=False)
    duration_minutes = Column(Integer, nullable=False, default=60)

    status = Column(
        Enum(BookingStatus, name="booking_status", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=BookingStatus.CONFIRMED,
    )
    payment_status = Column(
        Enum(PaymentStatus, name="payment_status", native_enum=False, values_callable=_enum_values),
        nullable=False,
        default=PaymentStatus.PENDING,
    )
    amount = Column(Float, nullable=False, default=0.0)

    service_name = Column(String, nullable=True)
    notes = Column(String, nullable=True)
    rating_submitted = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), default=_utcnow)
    updated_at = Column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from therapy_backend.auth.dependencies import get_current_user, require_roles
from therapy_backend.core import config
from therapy_backend.core.errors import SchedulingError
from therapy_backend.database import get_db
from therapy_backend.models.booking import BookingStatus, PaymentStatus
from therapy_backend.models.user import ADMIN_ROLE, CLIENT_ROLE, THERAPIST_ROLE, User
from therapy_backend.routes.common import database_unavailable, ensure_database_ready, http_error
from therapy_backend.scheduling import bookings

router = APIRouter(tags=['bookings'])

logger = logging.getLogger(__name__)


def _require_offset(value: datetime) -> datetime:
    if value.tzinfo is None:
        raise ValueError('Session time must include a time zone offset.')
    return value


class CreateBookingRequest(BaseModel):
    therapist_id: int
    session_time: datetime
    duration_minutes: int = Field(default=config.SESSION_DURATION_MINUTES, gt=0, le=480)
    amount: float = Field(default=0.0, ge=0)
    service_name: str | None = None
    notes: str | None = None

    @field_validator('session_time')
    @classmethod
    def validate_session_time(cls, value: datetime) -> datetime:
        return _require_offset(value)

    @field_validator('service_name')
    @classmethod
    def validate_service_name(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip()
        return normalized or None

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_BOOKING_NOTES_LENGTH:
            raise ValueError(f'Notes must be {config.MAX_BOOKING_NOTES_LENGTH} characters or fewer.')

        return normalized


class RescheduleBookingRequest(BaseModel):
    session_time: datetime

    @field_validator('session_time')
    @classmethod
    def validate_session_time(cls, value: datetime) -> datetime:
        return _require_offset(value)


class BookingResponse(BaseModel):
    id: int
    client_id: int
    client_name: str
    client_email: str
    therapist_id: int
    therapist_name: str
    session_time: datetime
    duration_minutes: int
    status: BookingStatus
    payment_status: PaymentStatus
    amount: float
    service_name: str | None = None
    notes: str | None = None
    rating_submitted: bool
    created_at: datetime | None = None
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: CreateBookingRequest,
    current_user: User = Depends(require_roles(CLIENT_ROLE)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return bookings.create_booking(
            db,
            therapist_id=data.therapist_id,
            client=current_user,
            session_time=data.session_time,
            duration_minutes=data.duration_minutes,
            amount=data.amount,
            service_name=data.service_name,
            notes=data.notes,
        )
    except SchedulingError as exc:
        logger.info('Booking rejected for client %s: %s', current_user.id, exc.message)
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Booking write failed for client %s', current_user.id)
        raise database_unavailable() from exc


@router.get('', response_model=list[BookingResponse])
def list_bookings(
    booking_status: BookingStatus | None = Query(default=None, alias='status'),
    updated_since: datetime | None = Query(default=None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return bookings.list_bookings(db, current_user, status=booking_status, updated_since=updated_since)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{booking_id}', response_model=BookingResponse)
def get_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        booking = bookings.get_booking(db, booking_id)
        bookings.ensure_can_view(booking, current_user)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return booking


@router.post('/{booking_id}/reschedule', response_model=BookingResponse)
def reschedule_booking(
    booking_id: int,
    data: RescheduleBookingRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return bookings.reschedule_booking(db, booking_id, data.session_time, actor=current_user)
    except SchedulingError as exc:
        logger.info('Reschedule of booking %s rejected: %s', booking_id, exc.message)
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Reschedule of booking %s failed', booking_id)
        raise database_unavailable() from exc


@router.post('/{booking_id}/cancel', response_model=BookingResponse)
def cancel_booking(
    booking_id: int,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return bookings.cancel_booking(db, booking_id, actor=current_user)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Cancellation of booking %s failed', booking_id)
        raise database_unavailable() from exc


@router.post('/{booking_id}/complete', response_model=BookingResponse)
def complete_booking(
    booking_id: int,
    current_user: User = Depends(require_roles(THERAPIST_ROLE, ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return bookings.mark_completed(db, booking_id, actor=current_user)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception('Completing booking %s failed', booking_id)
        raise database_unavailable() from exc

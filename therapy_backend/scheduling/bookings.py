"""Booking lifecycle: create, reschedule, cancel and complete sessions.

Each mutation re-derives availability inside the therapist's write lock and
writes in the same transaction, so two clients racing for one slot cannot
both succeed. The slot grid shown to clients is advisory; this module is
the gate.

    pending | confirmed -> completed   (terminal)
    pending | confirmed -> cancelled   (terminal)
"""

import logging
from datetime import datetime, timedelta

from sqlalchemy.orm import Session

from therapy_backend.core import config
from therapy_backend.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from therapy_backend.models.booking import Booking, BookingStatus, PaymentStatus, TERMINAL_STATUSES
from therapy_backend.models.user import ADMIN_ROLE, THERAPIST_ROLE, User
from therapy_backend.scheduling import store
from therapy_backend.scheduling.engine import slots_for_date
from therapy_backend.scheduling.timeutil import (
    as_utc,
    clinic_timezone,
    format_display_time,
    utcnow,
)

logger = logging.getLogger(__name__)


def _describe(instant: datetime) -> str:
    local = as_utc(instant).astimezone(clinic_timezone())
    return f'{local.date().isoformat()} {format_display_time(local.time())}'


def ensure_bookable(
    db: Session,
    therapist_id: int,
    session_time: datetime,
    duration_minutes: int,
    now: datetime | None = None,
    exclude_booking_id: int | None = None,
) -> None:
    """Raise unless every slot covered by the session is free right now."""
    if session_time.tzinfo is None:
        raise ValidationError('Session time must include a time zone offset.')

    now = as_utc(now or utcnow())
    start = as_utc(session_time)
    increment = config.SLOT_INCREMENT_MINUTES

    if duration_minutes <= 0:
        raise ValidationError('Session duration must be positive.')

    local_start = start.astimezone(clinic_timezone())
    if local_start.second or local_start.microsecond or local_start.minute % increment:
        raise ValidationError(
            f'Sessions must start on {increment}-minute boundaries.',
            slot_time=start,
        )

    if start < now + timedelta(minutes=config.MIN_BOOKING_LEAD_MINUTES):
        raise ValidationError('Sessions must be scheduled in the future.', slot_time=start)

    end = start + timedelta(minutes=duration_minutes)

    clash = store.find_overlapping_booking(db, therapist_id, start, end, exclude_booking_id=exclude_booking_id)
    if clash is not None:
        raise ConflictError(
            f'The slot at {_describe(start)} is no longer available.',
            booking_id=clash.id,
            slot_time=start,
        )

    slots = {
        slot.start: slot
        for slot in slots_for_date(
            db,
            therapist_id,
            local_start.date(),
            now=now,
            exclude_booking_id=exclude_booking_id,
        )
    }

    tick = start
    while tick < end:
        slot = slots.get(tick)
        if slot is None:
            raise ConflictError(
                f'The session at {_describe(start)} falls outside working hours.',
                slot_time=start,
            )
        if not slot.is_available:
            raise ConflictError(
                f'The slot at {_describe(tick)} is no longer available.',
                slot_time=tick,
            )
        tick += timedelta(minutes=increment)


def get_booking(db: Session, booking_id: int) -> Booking:
    return store.get_booking(db, booking_id)


def ensure_can_modify(booking: Booking, user: User) -> None:
    if user.role == ADMIN_ROLE:
        return
    if user.id not in (booking.client_id, booking.therapist_id):
        raise PermissionDeniedError('Only the client, the therapist or an admin can change this booking.', booking_id=booking.id)


def create_booking(
    db: Session,
    therapist_id: int,
    client: User,
    session_time: datetime,
    duration_minutes: int | None = None,
    amount: float = 0.0,
    service_name: str | None = None,
    notes: str | None = None,
    now: datetime | None = None,
) -> Booking:
    duration = config.SESSION_DURATION_MINUTES if duration_minutes is None else duration_minutes
    if amount < 0:
        raise ValidationError('Amount cannot be negative.')

    with store.therapist_write_lock(db, therapist_id) as therapist:
        if not therapist.is_enabled:
            raise ValidationError('This therapist is not accepting bookings.')

        ensure_bookable(db, therapist_id, session_time, duration, now=now)

        booking = store.insert_booking(
            db,
            client_id=client.id,
            client_name=client.name or '',
            client_email=client.email,
            therapist_id=therapist_id,
            therapist_name=therapist.name,
            session_time=session_time,
            duration_minutes=duration,
            status=BookingStatus.CONFIRMED,
            # Payment is collected before this call; the mocked provider always succeeds.
            payment_status=PaymentStatus.PAID,
            amount=amount,
            service_name=service_name,
            notes=notes,
        )
        db.commit()

    logger.info(
        'Booking %s created for therapist %s at %s (%s min)',
        booking.id,
        therapist_id,
        as_utc(booking.session_time).isoformat(),
        duration,
    )
    return booking


def reschedule_booking(
    db: Session,
    booking_id: int,
    new_session_time: datetime,
    therapist_id: int | None = None,
    actor: User | None = None,
    now: datetime | None = None,
) -> Booking:
    booking = store.get_booking(db, booking_id)
    therapist_id = booking.therapist_id if therapist_id is None else therapist_id
    if therapist_id != booking.therapist_id:
        raise ValidationError('Bookings cannot be moved to another therapist.', booking_id=booking_id)
    if actor is not None:
        ensure_can_modify(booking, actor)

    with store.therapist_write_lock(db, therapist_id):
        db.refresh(booking)
        if booking.status in TERMINAL_STATUSES:
            raise NotFoundError(
                f'Booking {booking_id} is {booking.status.value} and cannot be rescheduled.',
                booking_id=booking_id,
            )

        ensure_bookable(
            db,
            therapist_id,
            new_session_time,
            booking.duration_minutes,
            now=now,
            exclude_booking_id=booking.id,
        )

        previous = as_utc(booking.session_time)
        store.update_booking_time(db, booking, new_session_time)
        db.commit()

    logger.info('Booking %s moved from %s to %s', booking_id, previous.isoformat(), as_utc(booking.session_time).isoformat())
    return booking


def cancel_booking(db: Session, booking_id: int, actor: User | None = None) -> Booking:
    booking = store.get_booking(db, booking_id)
    if actor is not None:
        ensure_can_modify(booking, actor)

    with store.therapist_write_lock(db, booking.therapist_id):
        db.refresh(booking)
        if booking.status == BookingStatus.CANCELLED:
            db.commit()
            return booking
        if booking.status == BookingStatus.COMPLETED:
            raise InvalidStateError('Completed sessions cannot be cancelled.', booking_id=booking_id)

        store.update_booking_status(db, booking, BookingStatus.CANCELLED)
        db.commit()

    logger.info('Booking %s cancelled', booking_id)
    return booking


def mark_completed(db: Session, booking_id: int, actor: User | None = None) -> Booking:
    booking = store.get_booking(db, booking_id)
    if actor is not None and actor.role != ADMIN_ROLE and actor.id != booking.therapist_id:
        raise PermissionDeniedError('Only the session therapist can mark it completed.', booking_id=booking_id)

    with store.therapist_write_lock(db, booking.therapist_id):
        db.refresh(booking)
        if booking.status != BookingStatus.CONFIRMED:
            raise InvalidStateError(
                f'Only confirmed sessions can be completed; this one is {booking.status.value}.',
                booking_id=booking_id,
            )

        store.update_booking_status(db, booking, BookingStatus.COMPLETED)
        db.commit()

    logger.info('Booking %s completed', booking_id)
    return booking


def list_bookings(
    db: Session,
    user: User,
    status: BookingStatus | None = None,
    updated_since: datetime | None = None,
) -> list[Booking]:
    """Bookings visible to ``user``, newest session first."""
    query = db.query(Booking)

    if user.role == THERAPIST_ROLE:
        query = query.filter(Booking.therapist_id == user.id)
    elif user.role != ADMIN_ROLE:
        query = query.filter(Booking.client_id == user.id)

    if status is not None:
        query = query.filter(Booking.status == status)
    if updated_since is not None:
        query = query.filter(Booking.updated_at > as_utc(updated_since))

    return store.read_with_retries(db, lambda: query.order_by(Booking.session_time.desc()).all())


def ensure_can_view(booking: Booking, user: User) -> None:
    if user.role == ADMIN_ROLE:
        return
    if user.id not in (booking.client_id, booking.therapist_id):
        raise PermissionDeniedError('You cannot view this booking.', booking_id=booking.id)

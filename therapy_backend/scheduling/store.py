"""Reads and writes of schedule records.

The functions here only translate between the ORM and the scheduling
modules; the rules about what may be written live in ``engine`` and
``bookings``. Reads are retried a bounded number of times when the
database connection fails. Writes are never retried.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import datetime, timedelta
from threading import Lock
from typing import TypeVar

from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import Session

from therapy_backend.core import config
from therapy_backend.core.errors import NotFoundError, StoreUnavailableError, ValidationError
from therapy_backend.models.availability import WeeklyAvailabilityRule
from therapy_backend.models.booking import Booking, BookingStatus, OCCUPYING_STATUSES
from therapy_backend.models.busy_interval import BusyInterval
from therapy_backend.models.therapist import TherapistProfile
from therapy_backend.scheduling.slots import WorkingHours
from therapy_backend.scheduling.timeutil import as_utc, utcnow

logger = logging.getLogger(__name__)

T = TypeVar('T')

_locks_guard = Lock()
_therapist_locks: dict[int, Lock] = {}


def read_with_retries(db: Session, operation: Callable[[], T], attempts: int | None = None) -> T:
    attempts = attempts or config.STORE_READ_ATTEMPTS

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except OperationalError as exc:
            db.rollback()
            logger.warning('Store read failed (attempt %s of %s): %s', attempt, attempts, exc)
            if attempt == attempts:
                raise StoreUnavailableError('The schedule store is unavailable. Try again shortly.') from exc

    raise StoreUnavailableError('The schedule store is unavailable. Try again shortly.')


def get_therapist(db: Session, therapist_id: int) -> TherapistProfile:
    therapist = read_with_retries(
        db,
        lambda: db.query(TherapistProfile).filter(TherapistProfile.id == therapist_id).first(),
    )
    if therapist is None:
        raise NotFoundError(f'Therapist {therapist_id} not found.')
    return therapist


def get_weekly_availability(db: Session, therapist_id: int) -> list[WeeklyAvailabilityRule]:
    return read_with_retries(
        db,
        lambda: db.query(WeeklyAvailabilityRule)
        .filter(WeeklyAvailabilityRule.therapist_id == therapist_id)
        .order_by(WeeklyAvailabilityRule.day_of_week.asc())
        .all(),
    )


def get_busy_intervals(db: Session, therapist_id: int, start: datetime, end: datetime) -> list[BusyInterval]:
    range_start, range_end = as_utc(start), as_utc(end)
    return read_with_retries(
        db,
        lambda: db.query(BusyInterval)
        .filter(
            BusyInterval.therapist_id == therapist_id,
            BusyInterval.start_time < range_end,
            BusyInterval.end_time > range_start,
        )
        .order_by(BusyInterval.start_time.asc())
        .all(),
    )


def get_bookings(
    db: Session,
    therapist_id: int,
    start: datetime,
    end: datetime,
    statuses: Iterable[BookingStatus] | None = None,
) -> list[Booking]:
    """Bookings whose session window overlaps ``[start, end)``."""
    range_start, range_end = as_utc(start), as_utc(end)
    # A session may begin before the range and run into it.
    earliest_start = range_start - timedelta(days=1)

    def load() -> list[Booking]:
        query = db.query(Booking).filter(
            Booking.therapist_id == therapist_id,
            Booking.session_time < range_end,
            Booking.session_time >= earliest_start,
        )
        if statuses is not None:
            query = query.filter(Booking.status.in_(list(statuses)))
        return query.order_by(Booking.session_time.asc()).all()

    bookings = read_with_retries(db, load)
    return [
        booking
        for booking in bookings
        if as_utc(booking.session_time) + timedelta(minutes=booking.duration_minutes) > range_start
    ]


def find_overlapping_booking(
    db: Session,
    therapist_id: int,
    start: datetime,
    end: datetime,
    exclude_booking_id: int | None = None,
) -> Booking | None:
    for booking in get_bookings(db, therapist_id, start, end, statuses=OCCUPYING_STATUSES):
        if booking.id != exclude_booking_id:
            return booking
    return None


def get_booking(db: Session, booking_id: int) -> Booking:
    booking = read_with_retries(db, lambda: db.query(Booking).filter(Booking.id == booking_id).first())
    if booking is None:
        raise NotFoundError(f'Booking {booking_id} not found.', booking_id=booking_id)
    return booking


def put_weekly_availability(db: Session, therapist_id: int, rules: Iterable[WorkingHours]) -> list[WeeklyAvailabilityRule]:
    """Replace a therapist's whole weekly schedule in one transaction."""
    rules = list(rules)
    seen_days: set[int] = set()
    for rule in rules:
        rule.validate()
        if rule.day_of_week in seen_days:
            raise ValidationError(f'Day {rule.day_of_week} appears more than once in the schedule.')
        seen_days.add(rule.day_of_week)

    try:
        db.query(WeeklyAvailabilityRule).filter(
            WeeklyAvailabilityRule.therapist_id == therapist_id
        ).delete(synchronize_session=False)

        stored = [
            WeeklyAvailabilityRule(
                therapist_id=therapist_id,
                day_of_week=rule.day_of_week,
                start_time=rule.start_time,
                end_time=rule.end_time,
                break_start=rule.break_start if rule.has_break else None,
                break_minutes=rule.break_minutes if rule.has_break else 0,
            )
            for rule in rules
        ]
        db.add_all(stored)
        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info('Replaced weekly availability for therapist %s with %s rules', therapist_id, len(stored))
    return sorted(stored, key=lambda rule: rule.day_of_week)


def add_busy_interval(db: Session, therapist_id: int, start: datetime, end: datetime, reason: str) -> BusyInterval:
    interval = BusyInterval(
        therapist_id=therapist_id,
        start_time=as_utc(start),
        end_time=as_utc(end),
        reason=reason,
    )
    db.add(interval)
    db.flush()
    return interval


def get_busy_interval(db: Session, interval_id: int) -> BusyInterval:
    interval = read_with_retries(db, lambda: db.query(BusyInterval).filter(BusyInterval.id == interval_id).first())
    if interval is None:
        raise NotFoundError(f'Busy interval {interval_id} not found.')
    return interval


def remove_busy_interval(db: Session, interval_id: int) -> BusyInterval:
    interval = get_busy_interval(db, interval_id)
    db.delete(interval)
    db.flush()
    return interval


def insert_booking(db: Session, **fields) -> Booking:
    fields['session_time'] = as_utc(fields['session_time'])
    booking = Booking(**fields)
    db.add(booking)
    db.flush()
    return booking


def update_booking_status(db: Session, booking: Booking, status: BookingStatus) -> Booking:
    booking.status = status
    booking.updated_at = utcnow()
    db.flush()
    return booking


def update_booking_time(db: Session, booking: Booking, new_time: datetime) -> Booking:
    booking.session_time = as_utc(new_time)
    booking.updated_at = utcnow()
    db.flush()
    return booking


def _lock_for(therapist_id: int) -> Lock:
    with _locks_guard:
        lock = _therapist_locks.get(therapist_id)
        if lock is None:
            lock = Lock()
            _therapist_locks[therapist_id] = lock
        return lock


@contextmanager
def therapist_write_lock(db: Session, therapist_id: int, timeout: float | None = None) -> Iterator[TherapistProfile]:
    """Serialise writes to one therapist's bookings and busy intervals.

    Holds an in-process lock keyed by therapist id and, inside the open
    transaction, a row lock on the therapist profile so that other
    processes sharing the database wait as well. The block must commit
    before it exits; any exception rolls the transaction back.
    """
    lock = _lock_for(therapist_id)
    wait = config.WRITE_LOCK_TIMEOUT_SECONDS if timeout is None else timeout
    if not lock.acquire(timeout=wait):
        raise StoreUnavailableError(f'Schedule of therapist {therapist_id} is busy. Try again shortly.')

    try:
        therapist = (
            db.query(TherapistProfile)
            .filter(TherapistProfile.id == therapist_id)
            .with_for_update()
            .first()
        )
        if therapist is None:
            raise NotFoundError(f'Therapist {therapist_id} not found.')
        yield therapist
    except Exception:
        db.rollback()
        raise
    finally:
        lock.release()

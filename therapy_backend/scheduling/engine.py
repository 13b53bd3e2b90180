"""Availability engine: bookable slots for a therapist, read from the store."""

import logging
from datetime import date, datetime, timedelta

from sqlalchemy.orm import Session

from therapy_backend.core import config
from therapy_backend.core.errors import ConflictError, PermissionDeniedError, ValidationError
from therapy_backend.models.availability import WeeklyAvailabilityRule
from therapy_backend.models.booking import OCCUPYING_STATUSES
from therapy_backend.models.busy_interval import DAY_BLOCK, SLOT_BLOCK, BusyInterval
from therapy_backend.scheduling import store
from therapy_backend.scheduling.slots import (
    TimeSlot,
    WorkingHours,
    default_weekly_template,
    generate_slots_for_date,
    generate_weekly_rules,
    resolve_working_hours,
)
from therapy_backend.scheduling.timeutil import (
    as_utc,
    clinic_timezone,
    format_display_time,
    iterate_dates,
    local_date,
    local_day_bounds,
    overlaps,
    utcnow,
)

logger = logging.getLogger(__name__)


def slots_for_date(
    db: Session,
    therapist_id: int,
    day: date,
    now: datetime | None = None,
    exclude_booking_id: int | None = None,
) -> list[TimeSlot]:
    store.get_therapist(db, therapist_id)
    now = now or utcnow()

    rules = store.get_weekly_availability(db, therapist_id)
    hours = resolve_working_hours(rules, day)
    if hours is None:
        return []

    day_start, day_end = local_day_bounds(day)
    busy_intervals = store.get_busy_intervals(db, therapist_id, day_start, day_end)
    bookings = store.get_bookings(db, therapist_id, day_start, day_end, statuses=OCCUPYING_STATUSES)

    return generate_slots_for_date(
        day,
        hours,
        busy_intervals,
        bookings,
        now,
        exclude_booking_id=exclude_booking_id,
    )


def dates_with_availability(
    db: Session,
    therapist_id: int,
    horizon_days: int | None = None,
    now: datetime | None = None,
) -> list[date]:
    horizon_days = config.CALENDAR_DAYS if horizon_days is None else horizon_days
    if not 0 < horizon_days <= config.MAX_HORIZON_DAYS:
        raise ValidationError(f'Horizon must be between 1 and {config.MAX_HORIZON_DAYS} days.')

    now = now or utcnow()
    today = local_date(now)

    return [
        day
        for day in iterate_dates(today, horizon_days)
        if any(slot.is_available for slot in slots_for_date(db, therapist_id, day, now=now))
    ]


def get_weekly_schedule(db: Session, therapist_id: int) -> list[WorkingHours]:
    """Stored rules, or the default template when none were saved."""
    store.get_therapist(db, therapist_id)
    rules = store.get_weekly_availability(db, therapist_id)
    if rules:
        return [WorkingHours.from_rule(rule) for rule in rules]

    return sorted(default_weekly_template().values(), key=lambda hours: hours.day_of_week)


def replace_weekly_schedule(db: Session, therapist_id: int, rules: list[WorkingHours]) -> list[WeeklyAvailabilityRule]:
    store.get_therapist(db, therapist_id)
    return store.put_weekly_availability(db, therapist_id, rules)


def set_working_hours(
    db: Session,
    therapist_id: int,
    start: str,
    end: str,
    break_start: str | None,
) -> list[WeeklyAvailabilityRule]:
    rules = generate_weekly_rules(start, end, break_start)
    return replace_weekly_schedule(db, therapist_id, rules)


def list_busy_intervals(db: Session, therapist_id: int, start: datetime, end: datetime) -> list[BusyInterval]:
    if as_utc(end) <= as_utc(start):
        raise ValidationError('The end of the range must be after its start.')
    store.get_therapist(db, therapist_id)
    return store.get_busy_intervals(db, therapist_id, start, end)


def block_time(
    db: Session,
    therapist_id: int,
    reason: str,
    start: datetime | None = None,
    end: datetime | None = None,
    day: date | None = None,
    now: datetime | None = None,
) -> BusyInterval:
    """Block a single slot (or explicit range) or a whole clinic day."""
    if any(value is not None and value.tzinfo is None for value in (start, end)):
        raise ValidationError('Blocked times must include a time zone offset.')

    if reason == DAY_BLOCK:
        if day is None:
            raise ValidationError('A date is required to block a whole day.')
        start, end = local_day_bounds(day)
    elif reason == SLOT_BLOCK:
        if start is None:
            raise ValidationError('A start time is required to block a slot.')
        start = as_utc(start)
        end = as_utc(end) if end is not None else start + timedelta(minutes=config.SLOT_INCREMENT_MINUTES)
    else:
        raise ValidationError(f'Unknown block reason {reason!r}.')

    if end <= start:
        raise ValidationError('A blocked interval must end after it starts.')

    if end <= as_utc(now or utcnow()):
        raise ValidationError('Blocked time must lie in the future.')

    with store.therapist_write_lock(db, therapist_id):
        for existing in store.get_busy_intervals(db, therapist_id, start, end):
            if overlaps(start, end, as_utc(existing.start_time), as_utc(existing.end_time)):
                raise ConflictError('This time is already blocked.', slot_time=start)

        booking = store.find_overlapping_booking(db, therapist_id, start, end)
        if booking is not None:
            raise ConflictError(
                f'This time is already booked ({_describe(booking.session_time)}).',
                booking_id=booking.id,
                slot_time=as_utc(booking.session_time),
            )

        interval = store.add_busy_interval(db, therapist_id, start, end, reason)
        db.commit()

    logger.info('Therapist %s blocked %s to %s (%s)', therapist_id, start, end, reason)
    return interval


def unblock_time(db: Session, interval_id: int, therapist_id: int | None = None) -> None:
    interval = store.get_busy_interval(db, interval_id)
    if therapist_id is not None and interval.therapist_id != therapist_id:
        raise PermissionDeniedError('Only the therapist who blocked this time can unblock it.')

    store.remove_busy_interval(db, interval_id)
    db.commit()
    logger.info('Therapist %s unblocked interval %s', interval.therapist_id, interval_id)


def _describe(instant: datetime) -> str:
    local = as_utc(instant).astimezone(clinic_timezone())
    return f'{local.date().isoformat()} {format_display_time(local.time())}'

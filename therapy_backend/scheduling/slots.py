"""Slot generation for a therapist's working day.

Everything in this module is a pure function of its arguments; reading the
schedule, busy intervals and bookings from the database happens in
``therapy_backend.scheduling.engine``.

A slot is the half-open window ``[tick, tick + increment)``. Ticks that
touch the break are left out of the result entirely; every other tick is
returned and flagged available or not.
"""

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from zoneinfo import ZoneInfo

from therapy_backend.core import config
from therapy_backend.core.errors import ValidationError
from therapy_backend.models.booking import OCCUPYING_STATUSES
from therapy_backend.scheduling.timeutil import (
    as_utc,
    clinic_timezone,
    format_time_of_day,
    local_instant,
    overlaps,
    parse_time_of_day,
)


def _minutes_of(value: time) -> int:
    return value.hour * 60 + value.minute


@dataclass(frozen=True)
class WorkingHours:
    day_of_week: int
    start_time: time
    end_time: time
    break_start: time | None = None
    break_minutes: int = 0

    @classmethod
    def from_rule(cls, rule) -> 'WorkingHours':
        return cls(
            day_of_week=rule.day_of_week,
            start_time=rule.start_time,
            end_time=rule.end_time,
            break_start=rule.break_start,
            break_minutes=rule.break_minutes or 0,
        )

    @property
    def has_break(self) -> bool:
        return self.break_start is not None and self.break_minutes > 0

    def validate(self) -> None:
        if not 0 <= self.day_of_week <= 6:
            raise ValidationError('Day of week must be between 0 (Monday) and 6 (Sunday).')

        if self.start_time >= self.end_time:
            raise ValidationError(
                f'Working hours for day {self.day_of_week} must start before they end.'
            )

        if self.break_minutes < 0:
            raise ValidationError('Break length cannot be negative.')

        if self.break_minutes and self.break_start is None:
            raise ValidationError('A break length was given without a break start.')

        if self.has_break:
            if not self.start_time <= self.break_start < self.end_time:
                raise ValidationError('The break must start within working hours.')
            if _minutes_of(self.break_start) + self.break_minutes > _minutes_of(self.end_time):
                raise ValidationError('The break must end within working hours.')

        # Rule edges share the booking grid.
        increment = config.SLOT_INCREMENT_MINUTES
        for label, value in (('start', self.start_time), ('end', self.end_time), ('break start', self.break_start)):
            if value is not None and _minutes_of(value) % increment:
                raise ValidationError(
                    f'Working hours {label} {format_time_of_day(value)} must fall on a {increment}-minute boundary.'
                )
        if self.break_minutes % increment:
            raise ValidationError(f'Break length must be a multiple of {increment} minutes.')

    def break_window(self, day: date, tz: ZoneInfo) -> tuple[datetime, datetime] | None:
        if not self.has_break:
            return None
        start = local_instant(day, self.break_start, tz)
        return start, start + timedelta(minutes=self.break_minutes)


@dataclass(frozen=True)
class TimeSlot:
    date: date
    time: str
    start: datetime
    end: datetime
    is_available: bool


def booking_window(booking) -> tuple[datetime, datetime]:
    start = as_utc(booking.session_time)
    return start, start + timedelta(minutes=booking.duration_minutes)


def occupied_windows(bookings: Iterable, exclude_booking_id: int | None = None) -> list[tuple[datetime, datetime]]:
    return [
        booking_window(booking)
        for booking in bookings
        if booking.status in OCCUPYING_STATUSES and booking.id != exclude_booking_id
    ]


def generate_slots_for_date(
    day: date,
    hours: WorkingHours | None,
    busy_intervals: Iterable,
    bookings: Iterable,
    now: datetime,
    *,
    exclude_booking_id: int | None = None,
    increment_minutes: int | None = None,
    lead_minutes: int | None = None,
    tz: ZoneInfo | None = None,
) -> list[TimeSlot]:
    if hours is None:
        return []

    tz = tz or clinic_timezone()
    step = timedelta(minutes=increment_minutes or config.SLOT_INCREMENT_MINUTES)
    lead = config.MIN_BOOKING_LEAD_MINUTES if lead_minutes is None else lead_minutes
    earliest_start = as_utc(now) + timedelta(minutes=lead)

    busy_windows = [(as_utc(interval.start_time), as_utc(interval.end_time)) for interval in busy_intervals]
    booked_windows = occupied_windows(bookings, exclude_booking_id)
    break_window = hours.break_window(day, tz)

    window_start = local_instant(day, hours.start_time, tz)
    window_end = local_instant(day, hours.end_time, tz)

    slots: list[TimeSlot] = []
    current = window_start

    while current + step <= window_end:
        slot_end = current + step

        if break_window and overlaps(current, slot_end, *break_window):
            current = slot_end
            continue

        is_available = (
            current >= earliest_start
            and not any(overlaps(current, slot_end, start, end) for start, end in busy_windows)
            and not any(overlaps(current, slot_end, start, end) for start, end in booked_windows)
        )
        slots.append(
            TimeSlot(
                date=day,
                time=format_time_of_day(current.astimezone(tz).time()),
                start=current,
                end=slot_end,
                is_available=is_available,
            )
        )
        current = slot_end

    return slots


def default_weekly_template() -> dict[int, WorkingHours]:
    """Schedule used for a therapist who never saved working hours."""
    start = parse_time_of_day(config.DEFAULT_WORKING_HOURS_START)
    end = parse_time_of_day(config.DEFAULT_WORKING_HOURS_END)
    break_start = parse_time_of_day(config.DEFAULT_BREAK_START) if config.DEFAULT_BREAK_MINUTES else None

    return {
        day_of_week: WorkingHours(
            day_of_week=day_of_week,
            start_time=start,
            end_time=end,
            break_start=break_start,
            break_minutes=config.DEFAULT_BREAK_MINUTES,
        )
        for day_of_week in config.DEFAULT_WORKING_DAYS
    }


def resolve_working_hours(rules: Sequence, day: date) -> WorkingHours | None:
    """Working hours for ``day``; None means the therapist is off.

    Without any stored rule the default template applies. Once a therapist
    has saved a schedule, a weekday missing from it is a day off.
    """
    if not rules:
        return default_weekly_template().get(day.weekday())

    for rule in rules:
        if rule.day_of_week == day.weekday():
            return rule if isinstance(rule, WorkingHours) else WorkingHours.from_rule(rule)

    return None


def generate_weekly_rules(
    start: str,
    end: str,
    break_start: str | None,
    break_minutes: int | None = None,
    days: Iterable[int] | None = None,
) -> list[WorkingHours]:
    """Expand a single working-hours form into one rule per working day."""
    start_time = parse_time_of_day(start)
    end_time = parse_time_of_day(end)
    parsed_break = parse_time_of_day(break_start) if break_start else None
    minutes = config.WORKING_HOURS_BREAK_MINUTES if break_minutes is None else break_minutes

    rules = [
        WorkingHours(
            day_of_week=day_of_week,
            start_time=start_time,
            end_time=end_time,
            break_start=parsed_break,
            break_minutes=minutes if parsed_break else 0,
        )
        for day_of_week in (days if days is not None else range(6))
    ]
    for rule in rules:
        rule.validate()

    return rules


def is_within_working_hours(rules: Sequence, now: datetime, tz: ZoneInfo | None = None) -> bool:
    tz = tz or clinic_timezone()
    local_now = as_utc(now).astimezone(tz)
    hours = resolve_working_hours(rules, local_now.date())
    if hours is None:
        return False

    current = local_now.time().replace(second=0, microsecond=0)
    if not hours.start_time <= current < hours.end_time:
        return False

    if hours.has_break:
        minutes = _minutes_of(current)
        break_from = _minutes_of(hours.break_start)
        if break_from <= minutes < break_from + hours.break_minutes:
            return False

    return True

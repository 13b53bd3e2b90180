"""Time-of-day and date helpers shared by the scheduling modules.

Rules are written as ``HH:MM`` wall-clock strings in the clinic time zone.
Absolute instants are compared as timezone-aware UTC datetimes; naive
datetimes read back from stores without time zone support are taken to be
UTC.
"""

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from therapy_backend.core import config
from therapy_backend.core.errors import ValidationError

_TIME_OF_DAY_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})$')
DAY_NAMES = ('Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday', 'Sunday')


def clinic_timezone(name: str | None = None) -> ZoneInfo:
    return ZoneInfo(name or config.CLINIC_TIMEZONE)


def parse_time_of_day(value: str) -> time:
    match = _TIME_OF_DAY_PATTERN.match(value.strip()) if value else None
    if not match:
        raise ValidationError(f'Invalid time of day {value!r}; expected HH:MM.')

    hours, minutes = int(match.group(1)), int(match.group(2))
    if hours > 23 or minutes > 59:
        raise ValidationError(f'Invalid time of day {value!r}; expected HH:MM.')

    return time(hours, minutes)


def format_time_of_day(value: time) -> str:
    return f'{value.hour:02d}:{value.minute:02d}'


def format_display_time(value: str | time) -> str:
    """Render ``HH:MM`` (or a time) as ``h:MM AM/PM``."""
    parsed = parse_time_of_day(value) if isinstance(value, str) else value
    period = 'PM' if parsed.hour >= 12 else 'AM'
    display_hours = parsed.hour % 12 or 12
    return f'{display_hours}:{parsed.minute:02d} {period}'


def day_name(day_of_week: int) -> str:
    return DAY_NAMES[day_of_week]


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def local_instant(day: date, time_of_day: time, tz: ZoneInfo | None = None) -> datetime:
    """The UTC instant of a wall-clock time on a given clinic day."""
    return datetime.combine(day, time_of_day, tzinfo=tz or clinic_timezone()).astimezone(timezone.utc)


def local_day_bounds(day: date, tz: ZoneInfo | None = None) -> tuple[datetime, datetime]:
    start = local_instant(day, time.min, tz)
    end = local_instant(day + timedelta(days=1), time.min, tz)
    return start, end


def local_date(instant: datetime, tz: ZoneInfo | None = None) -> date:
    return as_utc(instant).astimezone(tz or clinic_timezone()).date()


def iterate_dates(start: date, days: int) -> list[date]:
    return [start + timedelta(days=offset) for offset in range(max(days, 0))]


def overlaps(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    # Half-open windows: touching at an edge is not an overlap.
    return start_a < end_b and start_b < end_a

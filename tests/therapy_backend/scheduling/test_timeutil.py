from datetime import date, datetime, time, timedelta, timezone

import pytest

from therapy_backend.core.errors import ValidationError
from therapy_backend.scheduling.timeutil import (
    as_utc,
    clinic_timezone,
    day_name,
    format_display_time,
    format_time_of_day,
    iterate_dates,
    local_day_bounds,
    local_instant,
    overlaps,
    parse_time_of_day,
)


def test_parse_time_of_day_accepts_single_digit_hours() -> None:
    assert parse_time_of_day('9:05') == time(9, 5)
    assert parse_time_of_day(' 18:30 ') == time(18, 30)


@pytest.mark.parametrize('value', ['', '9', '24:00', '12:60', '9:5', 'noon', '12:00:00'])
def test_parse_time_of_day_rejects_malformed_values(value: str) -> None:
    with pytest.raises(ValidationError):
        parse_time_of_day(value)


def test_format_time_of_day_pads_hours() -> None:
    assert format_time_of_day(time(9, 0)) == '09:00'


@pytest.mark.parametrize(
    ('value', 'expected'),
    [
        ('00:00', '12:00 AM'),
        ('09:00', '9:00 AM'),
        ('12:30', '12:30 PM'),
        ('18:05', '6:05 PM'),
        (time(23, 59), '11:59 PM'),
    ],
)
def test_format_display_time(value, expected: str) -> None:
    assert format_display_time(value) == expected


def test_day_name_starts_on_monday() -> None:
    assert day_name(0) == 'Monday'
    assert day_name(6) == 'Sunday'


def test_as_utc_treats_naive_values_as_utc() -> None:
    assert as_utc(datetime(2026, 1, 5, 10, 0)) == datetime(2026, 1, 5, 10, 0, tzinfo=timezone.utc)


def test_as_utc_converts_offsets() -> None:
    ist = timezone(timedelta(hours=5, minutes=30))

    assert as_utc(datetime(2026, 1, 5, 10, 0, tzinfo=ist)) == datetime(2026, 1, 5, 4, 30, tzinfo=timezone.utc)


def test_local_instant_uses_clinic_time_zone() -> None:
    instant = local_instant(date(2026, 1, 5), time(10, 0), clinic_timezone('Asia/Kolkata'))

    assert instant == datetime(2026, 1, 5, 4, 30, tzinfo=timezone.utc)


def test_local_day_bounds_cover_a_whole_day() -> None:
    start, end = local_day_bounds(date(2026, 1, 5), clinic_timezone('UTC'))

    assert start == datetime(2026, 1, 5, tzinfo=timezone.utc)
    assert end == datetime(2026, 1, 6, tzinfo=timezone.utc)


def test_iterate_dates_includes_start_day() -> None:
    assert iterate_dates(date(2026, 1, 30), 3) == [date(2026, 1, 30), date(2026, 1, 31), date(2026, 2, 1)]
    assert iterate_dates(date(2026, 1, 30), 0) == []


def test_overlaps_treats_touching_windows_as_disjoint() -> None:
    nine = datetime(2026, 1, 5, 9, 0, tzinfo=timezone.utc)
    ten = nine + timedelta(hours=1)
    eleven = ten + timedelta(hours=1)

    assert not overlaps(nine, ten, ten, eleven)
    assert overlaps(nine, eleven, ten, ten + timedelta(minutes=30))

from datetime import date, datetime, time, timedelta, timezone
from types import SimpleNamespace

import pytest

from therapy_backend.core.errors import ValidationError
from therapy_backend.models.booking import BookingStatus
from therapy_backend.scheduling.slots import (
    WorkingHours,
    default_weekly_template,
    generate_slots_for_date,
    generate_weekly_rules,
    is_within_working_hours,
    resolve_working_hours,
)
from therapy_backend.scheduling.timeutil import clinic_timezone

MONDAY = date(2026, 1, 5)
SUNDAY = date(2026, 1, 4)
NOW = datetime(2026, 1, 4, 12, 0, tzinfo=timezone.utc)
UTC = clinic_timezone('UTC')

TEN_TO_SEVEN = WorkingHours(
    day_of_week=0,
    start_time=time(10, 0),
    end_time=time(19, 0),
    break_start=time(13, 0),
    break_minutes=60,
)


def at(hour: int, minute: int = 0, day: date = MONDAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute, tzinfo=timezone.utc)


def booking(start: datetime, duration: int = 60, status: BookingStatus = BookingStatus.CONFIRMED, booking_id: int = 1):
    return SimpleNamespace(id=booking_id, session_time=start, duration_minutes=duration, status=status)


def busy(start: datetime, end: datetime):
    return SimpleNamespace(start_time=start, end_time=end)


def slots_for(hours=TEN_TO_SEVEN, busy_intervals=(), bookings=(), now=NOW, **kwargs):
    return generate_slots_for_date(MONDAY, hours, busy_intervals, bookings, now, tz=UTC, **kwargs)


def availability(slots) -> dict[str, bool]:
    return {slot.time: slot.is_available for slot in slots}


def test_generate_slots_skips_the_break() -> None:
    slots = slots_for()

    assert [slot.time for slot in slots] == [
        '10:00', '10:30', '11:00', '11:30', '12:00', '12:30',
        '14:00', '14:30', '15:00', '15:30', '16:00', '16:30',
        '17:00', '17:30', '18:00', '18:30',
    ]
    assert all(slot.is_available for slot in slots)
    assert slots[0].start == at(10)
    assert slots[0].end == at(10, 30)
    assert all(slot.date == MONDAY for slot in slots)


def test_confirmed_booking_blocks_every_slot_it_covers() -> None:
    result = availability(slots_for(bookings=[booking(at(11))]))

    assert result['10:30'] is True
    assert result['11:00'] is False
    assert result['11:30'] is False
    assert result['12:00'] is True


def test_longer_booking_blocks_following_slots() -> None:
    result = availability(slots_for(bookings=[booking(at(10), duration=90)]))

    assert [result['10:00'], result['10:30'], result['11:00'], result['11:30']] == [False, False, False, True]


def test_cancelled_booking_does_not_block() -> None:
    result = availability(slots_for(bookings=[booking(at(11), status=BookingStatus.CANCELLED)]))

    assert result['11:00'] is True
    assert result['11:30'] is True


@pytest.mark.parametrize('status', [BookingStatus.PENDING, BookingStatus.COMPLETED])
def test_pending_and_completed_bookings_block(status: BookingStatus) -> None:
    result = availability(slots_for(bookings=[booking(at(15), status=status)]))

    assert result['15:00'] is False


def test_excluded_booking_does_not_block() -> None:
    result = availability(slots_for(bookings=[booking(at(11), booking_id=7)], exclude_booking_id=7))

    assert result['11:00'] is True


def test_busy_interval_edges_are_half_open() -> None:
    result = availability(slots_for(busy_intervals=[busy(at(11), at(12))]))

    assert result['10:30'] is True
    assert result['11:00'] is False
    assert result['11:30'] is False
    assert result['12:00'] is True


def test_busy_interval_inside_a_slot_blocks_it() -> None:
    result = availability(slots_for(busy_intervals=[busy(at(15, 10), at(15, 20))]))

    assert result['15:00'] is False
    assert result['15:30'] is True


def test_whole_day_busy_interval_blocks_every_slot() -> None:
    slots = slots_for(busy_intervals=[busy(at(0), at(0) + timedelta(days=1))])

    assert slots
    assert not any(slot.is_available for slot in slots)


def test_slots_before_now_are_unavailable() -> None:
    result = availability(slots_for(now=at(11, 15)))

    assert result['10:00'] is False
    assert result['11:00'] is False
    assert result['11:30'] is True


def test_lead_time_pushes_first_available_slot() -> None:
    result = availability(slots_for(now=at(10), lead_minutes=60))

    assert result['10:30'] is False
    assert result['11:00'] is True


def test_off_day_has_no_slots() -> None:
    assert slots_for(hours=None) == []


@pytest.mark.parametrize('increment', [15, 30, 60])
def test_slots_are_strictly_increasing_and_disjoint(increment: int) -> None:
    slots = slots_for(increment_minutes=increment, bookings=[booking(at(11))])

    for previous, current in zip(slots, slots[1:]):
        assert previous.start < current.start
        assert previous.end <= current.start


def test_slots_use_clinic_wall_clock() -> None:
    kolkata = clinic_timezone('Asia/Kolkata')
    slots = generate_slots_for_date(MONDAY, TEN_TO_SEVEN, [], [], NOW, tz=kolkata)

    assert slots[0].time == '10:00'
    assert slots[0].start == datetime(2026, 1, 5, 4, 30, tzinfo=timezone.utc)


def test_default_template_covers_monday_to_saturday() -> None:
    template = default_weekly_template()

    assert sorted(template) == [0, 1, 2, 3, 4, 5]
    assert template[0].start_time == time(9, 0)
    assert template[0].end_time == time(18, 0)
    assert template[0].break_start == time(13, 0)
    assert template[0].break_minutes == 120


def test_resolve_working_hours_falls_back_to_template_without_rules() -> None:
    assert resolve_working_hours([], MONDAY) == default_weekly_template()[0]
    assert resolve_working_hours([], SUNDAY) is None


def test_resolve_working_hours_treats_missing_weekday_as_day_off() -> None:
    tuesday = WorkingHours(day_of_week=1, start_time=time(9, 0), end_time=time(17, 0))

    assert resolve_working_hours([tuesday], MONDAY) is None
    assert resolve_working_hours([tuesday], MONDAY + timedelta(days=1)) == tuesday


def test_default_template_slots_skip_two_hour_break() -> None:
    slots = slots_for(hours=resolve_working_hours([], MONDAY))
    times = [slot.time for slot in slots]

    assert times[0] == '09:00'
    assert times[-1] == '17:30'
    assert '12:30' in times
    assert not {'13:00', '13:30', '14:00', '14:30'} & set(times)
    assert '15:00' in times


@pytest.mark.parametrize(
    'hours',
    [
        WorkingHours(day_of_week=7, start_time=time(9, 0), end_time=time(17, 0)),
        WorkingHours(day_of_week=0, start_time=time(17, 0), end_time=time(9, 0)),
        WorkingHours(day_of_week=0, start_time=time(9, 0), end_time=time(9, 0)),
        WorkingHours(day_of_week=0, start_time=time(9, 0), end_time=time(17, 0), break_minutes=30),
        WorkingHours(day_of_week=0, start_time=time(9, 0), end_time=time(17, 0), break_start=time(8, 0), break_minutes=30),
        WorkingHours(day_of_week=0, start_time=time(9, 0), end_time=time(17, 0), break_start=time(16, 30), break_minutes=60),
        WorkingHours(day_of_week=0, start_time=time(9, 15), end_time=time(12, 15)),
        WorkingHours(day_of_week=0, start_time=time(9, 0), end_time=time(17, 45)),
        WorkingHours(day_of_week=0, start_time=time(9, 0), end_time=time(17, 0), break_start=time(13, 15), break_minutes=30),
        WorkingHours(day_of_week=0, start_time=time(9, 0), end_time=time(17, 0), break_start=time(13, 0), break_minutes=45),
    ],
)
def test_working_hours_validate_rejects_bad_rules(hours: WorkingHours) -> None:
    with pytest.raises(ValidationError):
        hours.validate()


def test_generate_weekly_rules_expands_to_six_days() -> None:
    rules = generate_weekly_rules('10:00', '19:00', '13:00')

    assert [rule.day_of_week for rule in rules] == [0, 1, 2, 3, 4, 5]
    assert rules[0] == TEN_TO_SEVEN


def test_generate_weekly_rules_without_break() -> None:
    rules = generate_weekly_rules('09:00', '17:00', None, days=[2])

    assert len(rules) == 1
    assert not rules[0].has_break


def test_generate_weekly_rules_rejects_inverted_hours() -> None:
    with pytest.raises(ValidationError):
        generate_weekly_rules('19:00', '10:00', None)


@pytest.mark.parametrize(
    ('now', 'expected'),
    [
        (at(10), True),
        (at(9, 59), False),
        (at(13, 30), False),
        (at(14), True),
        (at(19), False),
        (at(12, day=SUNDAY), False),
    ],
)
def test_is_within_working_hours(now: datetime, expected: bool) -> None:
    assert is_within_working_hours([TEN_TO_SEVEN], now, tz=UTC) is expected


def test_generate_weekly_rules_rejects_hours_off_the_slot_grid() -> None:
    with pytest.raises(ValidationError):
        generate_weekly_rules('09:15', '12:15', None)

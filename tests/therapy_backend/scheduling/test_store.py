from datetime import datetime, time, timedelta, timezone

import pytest
from sqlalchemy.exc import OperationalError

from therapy_backend.core.errors import NotFoundError, StoreUnavailableError, ValidationError
from therapy_backend.models.booking import BookingStatus, OCCUPYING_STATUSES
from therapy_backend.scheduling import store
from therapy_backend.scheduling.slots import WorkingHours


def rule(day_of_week: int, start: time = time(10, 0), end: time = time(19, 0)) -> WorkingHours:
    return WorkingHours(day_of_week=day_of_week, start_time=start, end_time=end, break_start=time(13, 0), break_minutes=60)


def connection_lost() -> OperationalError:
    return OperationalError('SELECT 1', {}, Exception('server closed the connection unexpectedly'))


def test_put_weekly_availability_round_trips_in_any_order(db, therapist) -> None:
    store.put_weekly_availability(db, therapist.id, [rule(3), rule(0), rule(5)])

    stored = store.get_weekly_availability(db, therapist.id)

    assert {WorkingHours.from_rule(item) for item in stored} == {rule(0), rule(3), rule(5)}
    assert [item.day_of_week for item in stored] == [0, 3, 5]


def test_put_weekly_availability_replaces_previous_rules(db, therapist) -> None:
    store.put_weekly_availability(db, therapist.id, [rule(0), rule(1)])
    store.put_weekly_availability(db, therapist.id, [rule(4)])

    assert [item.day_of_week for item in store.get_weekly_availability(db, therapist.id)] == [4]


def test_put_weekly_availability_keeps_old_rules_when_new_set_is_invalid(db, therapist) -> None:
    store.put_weekly_availability(db, therapist.id, [rule(0)])

    with pytest.raises(ValidationError):
        store.put_weekly_availability(db, therapist.id, [rule(1), rule(2, start=time(19, 0), end=time(10, 0))])

    assert [item.day_of_week for item in store.get_weekly_availability(db, therapist.id)] == [0]


def test_put_weekly_availability_rejects_duplicate_days(db, therapist) -> None:
    with pytest.raises(ValidationError):
        store.put_weekly_availability(db, therapist.id, [rule(0), rule(0, start=time(8, 0))])


def test_get_therapist_raises_for_unknown_id(db) -> None:
    with pytest.raises(NotFoundError):
        store.get_therapist(db, 404)


def test_get_bookings_includes_session_running_into_range(db, therapist, client_user, add_booking) -> None:
    late = add_booking(therapist, client_user, datetime(2026, 1, 4, 23, 30, tzinfo=timezone.utc), duration_minutes=60)
    add_booking(therapist, client_user, datetime(2026, 1, 4, 20, 0, tzinfo=timezone.utc))

    found = store.get_bookings(
        db,
        therapist.id,
        datetime(2026, 1, 5, tzinfo=timezone.utc),
        datetime(2026, 1, 6, tzinfo=timezone.utc),
    )

    assert [item.id for item in found] == [late.id]


def test_find_overlapping_booking_ignores_cancelled_and_excluded(db, therapist, client_user, add_booking) -> None:
    start = datetime(2026, 1, 5, 11, 0, tzinfo=timezone.utc)
    add_booking(therapist, client_user, start, status=BookingStatus.CANCELLED)
    active = add_booking(therapist, client_user, start)

    assert store.find_overlapping_booking(db, therapist.id, start, start + timedelta(minutes=30)).id == active.id
    assert store.find_overlapping_booking(
        db, therapist.id, start, start + timedelta(minutes=30), exclude_booking_id=active.id
    ) is None
    assert store.find_overlapping_booking(db, therapist.id, start + timedelta(hours=1), start + timedelta(hours=2)) is None


def test_get_bookings_filters_by_status(db, therapist, client_user, add_booking) -> None:
    start = datetime(2026, 1, 5, 11, 0, tzinfo=timezone.utc)
    add_booking(therapist, client_user, start, status=BookingStatus.CANCELLED)

    assert store.get_bookings(db, therapist.id, start, start + timedelta(hours=1), statuses=OCCUPYING_STATUSES) == []
    assert len(store.get_bookings(db, therapist.id, start, start + timedelta(hours=1))) == 1


def test_read_with_retries_recovers_from_transient_failure(db) -> None:
    calls = []

    def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise connection_lost()
        return 'ok'

    assert store.read_with_retries(db, flaky, attempts=3) == 'ok'
    assert len(calls) == 3


def test_read_with_retries_gives_up_after_bounded_attempts(db) -> None:
    calls = []

    def broken():
        calls.append(1)
        raise connection_lost()

    with pytest.raises(StoreUnavailableError) as exception_info:
        store.read_with_retries(db, broken, attempts=2)

    assert len(calls) == 2
    assert exception_info.value.status_code == 503


def test_read_with_retries_does_not_retry_domain_errors(db) -> None:
    calls = []

    def missing():
        calls.append(1)
        raise NotFoundError('gone')

    with pytest.raises(NotFoundError):
        store.read_with_retries(db, missing, attempts=3)

    assert len(calls) == 1


def test_therapist_write_lock_rejects_unknown_therapist(db) -> None:
    with pytest.raises(NotFoundError):
        with store.therapist_write_lock(db, 404):
            pass


def test_therapist_write_lock_times_out_while_held(db, therapist) -> None:
    lock = store._lock_for(therapist.id)
    lock.acquire()
    try:
        with pytest.raises(StoreUnavailableError):
            with store.therapist_write_lock(db, therapist.id, timeout=0.01):
                pass
    finally:
        lock.release()


def test_therapist_write_lock_rolls_back_on_error(db, therapist) -> None:
    start = datetime(2026, 1, 5, 11, 0, tzinfo=timezone.utc)

    with pytest.raises(RuntimeError):
        with store.therapist_write_lock(db, therapist.id):
            store.add_busy_interval(db, therapist.id, start, start + timedelta(hours=1), 'slot')
            raise RuntimeError('boom')

    assert store.get_busy_intervals(db, therapist.id, start, start + timedelta(hours=1)) == []
    assert not store._lock_for(therapist.id).locked()

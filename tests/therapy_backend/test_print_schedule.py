from datetime import date, datetime, timedelta, timezone

from therapy_backend import print_schedule
from therapy_backend.core.errors import NotFoundError
from therapy_backend.scheduling.slots import TimeSlot

MONDAY = date(2026, 1, 5)


def _slot(hour: int, minute: int, is_available: bool) -> TimeSlot:
    start = datetime(2026, 1, 5, hour, minute, tzinfo=timezone.utc)
    return TimeSlot(
        date=MONDAY,
        time=f'{hour:02d}:{minute:02d}',
        start=start,
        end=start + timedelta(minutes=30),
        is_available=is_available,
    )


class _FakeSession:
    closed = False

    def close(self) -> None:
        self.closed = True


def test_format_schedule_marks_taken_slots() -> None:
    lines = print_schedule.format_schedule([_slot(10, 0, True), _slot(14, 30, False)])

    assert lines == ['10:00 AM  available', ' 2:30 PM  taken']


def test_main_rejects_wrong_argument_count(capsys) -> None:
    assert print_schedule.main(['1']) == 2
    assert 'Usage' in capsys.readouterr().err


def test_main_rejects_bad_date(capsys) -> None:
    assert print_schedule.main(['1', '05/01/2026']) == 2
    assert 'Invalid argument' in capsys.readouterr().err


def test_main_prints_slots(monkeypatch, capsys) -> None:
    session = _FakeSession()
    monkeypatch.setattr(print_schedule, 'SessionLocal', lambda: session)
    monkeypatch.setattr(print_schedule, 'slots_for_date', lambda db, therapist_id, day: [_slot(10, 0, True)])

    assert print_schedule.main(['7', '2026-01-05']) == 0

    output = capsys.readouterr().out
    assert 'Therapist 7, 2026-01-05' in output
    assert '10:00 AM  available' in output
    assert session.closed


def test_main_reports_scheduling_errors(monkeypatch, capsys) -> None:
    def missing(db, therapist_id, day):
        raise NotFoundError(f'Therapist {therapist_id} not found.')

    monkeypatch.setattr(print_schedule, 'SessionLocal', _FakeSession)
    monkeypatch.setattr(print_schedule, 'slots_for_date', missing)

    assert print_schedule.main(['7', '2026-01-05']) == 1
    assert 'Therapist 7 not found.' in capsys.readouterr().err

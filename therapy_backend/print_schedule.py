"""Print a therapist's slot grid for one day to stdout.

Usage:
    python -m therapy_backend.print_schedule THERAPIST_ID YYYY-MM-DD
"""
import sys
from datetime import date

from therapy_backend.core.errors import SchedulingError
from therapy_backend.database import SessionLocal
from therapy_backend.scheduling.engine import slots_for_date
from therapy_backend.scheduling.timeutil import format_display_time


def format_schedule(slots) -> list[str]:
    return [
        f"{format_display_time(slot.time):>8}  {'available' if slot.is_available else 'taken'}"
        for slot in slots
    ]


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else argv
    if len(args) != 2:
        print(__doc__.strip(), file=sys.stderr)
        return 2

    try:
        therapist_id = int(args[0])
        day = date.fromisoformat(args[1])
    except ValueError as exc:
        print(f"Invalid argument: {exc}", file=sys.stderr)
        return 2

    db = SessionLocal()
    try:
        slots = slots_for_date(db, therapist_id, day)
    except SchedulingError as exc:
        print(exc.message, file=sys.stderr)
        return 1
    finally:
        db.close()

    if not slots:
        print(f"Therapist {therapist_id} is not working on {day.isoformat()}.")
        return 0

    print(f"Therapist {therapist_id}, {day.isoformat()}")
    for line in format_schedule(slots):
        print(line)
    return 0


if __name__ == "__main__":
    sys.exit(main())

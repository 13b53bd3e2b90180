"""Error kinds raised by the availability engine and booking lifecycle."""

from datetime import datetime


class SchedulingError(Exception):
    """Base class for every rejected scheduling operation."""

    status_code = 400

    def __init__(
        self,
        message: str,
        *,
        booking_id: int | None = None,
        slot_time: datetime | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.booking_id = booking_id
        self.slot_time = slot_time


class ValidationError(SchedulingError):
    """Malformed input: end before start, misaligned time, missing field."""

    status_code = 400


class PermissionDeniedError(SchedulingError):
    status_code = 403


class NotFoundError(SchedulingError):
    status_code = 404


class ConflictError(SchedulingError):
    """The requested time is taken by a booking or a busy interval."""

    status_code = 409


class InvalidStateError(SchedulingError):
    """The booking's current status does not allow the operation."""

    status_code = 409


class StoreUnavailableError(SchedulingError):
    """The store could not be reached after the allowed attempts.

    Unlike the domain errors above, callers may retry this one later.
    """

    status_code = 503

from datetime import date, datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from therapy_backend.auth.dependencies import get_current_user, require_roles
from therapy_backend.core import config
from therapy_backend.core.errors import SchedulingError
from therapy_backend.database import get_db
from therapy_backend.models.user import ADMIN_ROLE, THERAPIST_ROLE, User
from therapy_backend.routes.common import database_unavailable, ensure_database_ready, http_error
from therapy_backend.scheduling import engine, store
from therapy_backend.scheduling.slots import TimeSlot, WorkingHours, is_within_working_hours
from therapy_backend.scheduling.timeutil import (
    day_name,
    format_display_time,
    format_time_of_day,
    parse_time_of_day,
    utcnow,
)

router = APIRouter(tags=['availability'])


def _normalize_time_of_day(value: str | None) -> str | None:
    if value is None:
        return None
    try:
        return format_time_of_day(parse_time_of_day(value))
    except SchedulingError as exc:
        raise ValueError(exc.message) from exc


class WeeklyRuleRequest(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str
    break_start: str | None = None
    break_minutes: int = Field(default=0, ge=0)

    @field_validator('start_time', 'end_time', 'break_start')
    @classmethod
    def validate_time_of_day(cls, value: str | None) -> str | None:
        return _normalize_time_of_day(value)

    def to_working_hours(self) -> WorkingHours:
        return WorkingHours(
            day_of_week=self.day_of_week,
            start_time=parse_time_of_day(self.start_time),
            end_time=parse_time_of_day(self.end_time),
            break_start=parse_time_of_day(self.break_start) if self.break_start else None,
            break_minutes=self.break_minutes,
        )


class WorkingHoursRequest(BaseModel):
    start_time: str
    end_time: str
    break_start: str | None = None

    @field_validator('start_time', 'end_time', 'break_start')
    @classmethod
    def validate_time_of_day(cls, value: str | None) -> str | None:
        return _normalize_time_of_day(value)


class WeeklyRuleResponse(BaseModel):
    day_of_week: int
    day_name: str
    start_time: str
    end_time: str
    break_start: str | None = None
    break_minutes: int


class TimeSlotResponse(BaseModel):
    date: date
    time: str
    display_time: str
    start_time: datetime
    end_time: datetime
    is_available: bool


class BlockTimeRequest(BaseModel):
    reason: Literal['slot', 'day'] = 'slot'
    start_time: datetime | None = None
    end_time: datetime | None = None
    day: date | None = None

    @model_validator(mode='after')
    def validate_shape(self) -> 'BlockTimeRequest':
        if self.reason == 'day' and self.day is None:
            raise ValueError('A date is required to block a whole day.')
        if self.reason == 'slot' and self.start_time is None:
            raise ValueError('A start time is required to block a slot.')
        return self


class BusyIntervalResponse(BaseModel):
    id: int
    therapist_id: int
    start_time: datetime
    end_time: datetime
    reason: str

    class Config:
        from_attributes = True


class WorkingStatusResponse(BaseModel):
    therapist_id: int
    is_working: bool


def _rule_response(rule) -> WeeklyRuleResponse:
    hours = rule if isinstance(rule, WorkingHours) else WorkingHours.from_rule(rule)
    return WeeklyRuleResponse(
        day_of_week=hours.day_of_week,
        day_name=day_name(hours.day_of_week),
        start_time=format_time_of_day(hours.start_time),
        end_time=format_time_of_day(hours.end_time),
        break_start=format_time_of_day(hours.break_start) if hours.has_break else None,
        break_minutes=hours.break_minutes if hours.has_break else 0,
    )


def _slot_response(slot: TimeSlot) -> TimeSlotResponse:
    return TimeSlotResponse(
        date=slot.date,
        time=slot.time,
        display_time=format_display_time(slot.time),
        start_time=slot.start,
        end_time=slot.end,
        is_available=slot.is_available,
    )


def ensure_schedule_owner(user: User, therapist_id: int) -> None:
    if user.role == ADMIN_ROLE:
        return
    if user.role != THERAPIST_ROLE or user.id != therapist_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='Only the therapist can change their own schedule.',
        )


@router.get('/therapists/{therapist_id}/slots', response_model=list[TimeSlotResponse])
def list_slots(
    therapist_id: int,
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        slots = engine.slots_for_date(db, therapist_id, slot_date)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return [_slot_response(slot) for slot in slots]


@router.get('/therapists/{therapist_id}/dates', response_model=list[date])
def list_available_dates(
    therapist_id: int,
    days: int = Query(default=config.CALENDAR_DAYS, ge=1, le=config.MAX_HORIZON_DAYS),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return engine.dates_with_availability(db, therapist_id, days)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/therapists/{therapist_id}/status', response_model=WorkingStatusResponse)
def get_working_status(therapist_id: int, db: Session = Depends(get_db)):
    try:
        store.get_therapist(db, therapist_id)
        rules = store.get_weekly_availability(db, therapist_id)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return WorkingStatusResponse(therapist_id=therapist_id, is_working=is_within_working_hours(rules, utcnow()))


@router.get('/therapists/{therapist_id}/weekly', response_model=list[WeeklyRuleResponse])
def get_weekly_schedule(therapist_id: int, db: Session = Depends(get_db)):
    try:
        rules = engine.get_weekly_schedule(db, therapist_id)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return [_rule_response(rule) for rule in rules]


@router.put('/therapists/{therapist_id}/weekly', response_model=list[WeeklyRuleResponse])
def replace_weekly_schedule(
    therapist_id: int,
    rules: list[WeeklyRuleRequest],
    current_user: User = Depends(require_roles(THERAPIST_ROLE, ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    ensure_schedule_owner(current_user, therapist_id)

    try:
        stored = engine.replace_weekly_schedule(db, therapist_id, [rule.to_working_hours() for rule in rules])
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return [_rule_response(rule) for rule in stored]


@router.put('/therapists/{therapist_id}/working-hours', response_model=list[WeeklyRuleResponse])
def set_working_hours(
    therapist_id: int,
    data: WorkingHoursRequest,
    current_user: User = Depends(require_roles(THERAPIST_ROLE, ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    ensure_schedule_owner(current_user, therapist_id)

    try:
        stored = engine.set_working_hours(db, therapist_id, data.start_time, data.end_time, data.break_start)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return [_rule_response(rule) for rule in stored]


@router.get('/therapists/{therapist_id}/busy', response_model=list[BusyIntervalResponse])
def list_busy_intervals(
    therapist_id: int,
    start: datetime = Query(...),
    end: datetime = Query(...),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    ensure_schedule_owner(current_user, therapist_id)
    ensure_database_ready()

    try:
        return engine.list_busy_intervals(db, therapist_id, start, end)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post(
    '/therapists/{therapist_id}/busy',
    response_model=BusyIntervalResponse,
    status_code=status.HTTP_201_CREATED,
)
def block_time(
    therapist_id: int,
    data: BlockTimeRequest,
    current_user: User = Depends(require_roles(THERAPIST_ROLE, ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    ensure_schedule_owner(current_user, therapist_id)
    ensure_database_ready()

    try:
        return engine.block_time(
            db,
            therapist_id,
            data.reason,
            start=data.start_time,
            end=data.end_time,
            day=data.day,
            now=datetime.now(timezone.utc),
        )
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/busy/{interval_id}', status_code=status.HTTP_204_NO_CONTENT)
def unblock_time(
    interval_id: int,
    current_user: User = Depends(require_roles(THERAPIST_ROLE, ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    owner_id = None if current_user.role == ADMIN_ROLE else current_user.id

    try:
        engine.unblock_time(db, interval_id, therapist_id=owner_id)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

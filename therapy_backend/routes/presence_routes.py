"""Online/offline presence as a TTL heartbeat, kept apart from scheduling."""

from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from therapy_backend.auth.dependencies import get_current_user
from therapy_backend.core import config
from therapy_backend.database import get_db
from therapy_backend.models.presence import Presence
from therapy_backend.models.user import User
from therapy_backend.routes.common import database_unavailable
from therapy_backend.scheduling.timeutil import as_utc

router = APIRouter(tags=['presence'])


class PresenceResponse(BaseModel):
    user_id: int
    is_online: bool
    last_seen: datetime | None = None


def record_heartbeat(db: Session, user_id: int, now: datetime) -> Presence:
    presence = db.query(Presence).filter(Presence.user_id == user_id).first()
    if presence is None:
        presence = Presence(user_id=user_id, last_seen=now)
        db.add(presence)
    else:
        presence.last_seen = now
    db.commit()
    return presence


def mark_offline(db: Session, user_id: int) -> None:
    db.query(Presence).filter(Presence.user_id == user_id).delete(synchronize_session=False)
    db.commit()


def get_presence(db: Session, user_id: int, now: datetime) -> PresenceResponse:
    presence = db.query(Presence).filter(Presence.user_id == user_id).first()
    if presence is None:
        return PresenceResponse(user_id=user_id, is_online=False)

    last_seen = as_utc(presence.last_seen)
    is_online = as_utc(now) - last_seen < timedelta(seconds=config.PRESENCE_TTL_SECONDS)
    return PresenceResponse(user_id=user_id, is_online=is_online, last_seen=last_seen)


@router.post('/heartbeat', response_model=PresenceResponse)
def heartbeat(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    now = datetime.now(timezone.utc)
    try:
        record_heartbeat(db, current_user.id, now)
        return get_presence(db, current_user.id, now)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/offline', status_code=status.HTTP_204_NO_CONTENT)
def go_offline(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    try:
        mark_offline(db, current_user.id)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/{user_id}', response_model=PresenceResponse)
def read_presence(user_id: int, db: Session = Depends(get_db)):
    try:
        return get_presence(db, user_id, datetime.now(timezone.utc))
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from therapy_backend.auth.dependencies import require_roles
from therapy_backend.core import config
from therapy_backend.core.errors import SchedulingError
from therapy_backend.database import get_db
from therapy_backend.models.user import ADMIN_ROLE, CLIENT_ROLE, User
from therapy_backend.routes.common import database_unavailable, http_error
from therapy_backend.scheduling import feedback as feedback_service

router = APIRouter(tags=['feedback'])


class SubmitFeedbackRequest(BaseModel):
    booking_id: int
    rating: int = Field(ge=1, le=5)
    comment: str | None = None
    is_public: bool = True

    @field_validator('comment')
    @classmethod
    def validate_comment(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > config.MAX_FEEDBACK_COMMENT_LENGTH:
            raise ValueError(f'Comments must be {config.MAX_FEEDBACK_COMMENT_LENGTH} characters or fewer.')

        return normalized


class VisibilityRequest(BaseModel):
    is_public: bool


class FeedbackResponse(BaseModel):
    id: int
    booking_id: int
    client_name: str
    therapist_id: int
    rating: int
    comment: str | None = None
    is_public: bool
    created_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
def submit_feedback(
    data: SubmitFeedbackRequest,
    current_user: User = Depends(require_roles(CLIENT_ROLE)),
    db: Session = Depends(get_db),
):
    try:
        return feedback_service.submit_feedback(
            db,
            booking_id=data.booking_id,
            client=current_user,
            rating=data.rating,
            comment=data.comment,
            is_public=data.is_public,
        )
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/therapists/{therapist_id}', response_model=list[FeedbackResponse])
def list_public_feedback(therapist_id: int, db: Session = Depends(get_db)):
    try:
        return feedback_service.list_public_feedback(db, therapist_id)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('', response_model=list[FeedbackResponse])
def list_all_feedback(
    rating: int | None = Query(default=None, ge=1, le=5),
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    try:
        return feedback_service.list_feedback(db, rating=rating)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.patch('/{feedback_id}/visibility', response_model=FeedbackResponse)
def set_visibility(
    feedback_id: int,
    data: VisibilityRequest,
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    try:
        return feedback_service.set_feedback_visibility(db, feedback_id, data.is_public)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{feedback_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_feedback(
    feedback_id: int,
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    try:
        feedback_service.delete_feedback(db, feedback_id)
    except SchedulingError as exc:
        raise http_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

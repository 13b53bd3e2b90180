"""Client feedback on completed sessions and the therapist rating it feeds."""

import logging

from sqlalchemy.orm import Session

from therapy_backend.core import config
from therapy_backend.core.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from therapy_backend.models.booking import BookingStatus
from therapy_backend.models.feedback import Feedback
from therapy_backend.models.therapist import TherapistProfile
from therapy_backend.models.user import User
from therapy_backend.scheduling import store

logger = logging.getLogger(__name__)

ANONYMOUS_NAME = 'Anonymous'


def submit_feedback(
    db: Session,
    booking_id: int,
    client: User,
    rating: int,
    comment: str | None = None,
    is_public: bool = True,
) -> Feedback:
    if not 1 <= rating <= 5:
        raise ValidationError('Rating must be between 1 and 5.', booking_id=booking_id)
    if comment is not None and len(comment) > config.MAX_FEEDBACK_COMMENT_LENGTH:
        raise ValidationError(
            f'Comments must be {config.MAX_FEEDBACK_COMMENT_LENGTH} characters or fewer.',
            booking_id=booking_id,
        )

    booking = store.get_booking(db, booking_id)
    if booking.client_id != client.id:
        raise PermissionDeniedError('Only the client of this session can rate it.', booking_id=booking_id)
    if booking.status != BookingStatus.COMPLETED:
        raise InvalidStateError('Feedback can only be left for completed sessions.', booking_id=booking_id)

    existing = db.query(Feedback).filter(Feedback.booking_id == booking_id).first()
    if existing is not None or booking.rating_submitted:
        raise ConflictError('Feedback was already submitted for this session.', booking_id=booking_id)

    try:
        feedback = Feedback(
            booking_id=booking_id,
            client_id=client.id,
            # Public testimonials never carry the client's name.
            client_name=ANONYMOUS_NAME if is_public else (client.name or ''),
            therapist_id=booking.therapist_id,
            rating=rating,
            comment=comment,
            is_public=is_public,
        )
        db.add(feedback)
        booking.rating_submitted = True

        therapist = (
            db.query(TherapistProfile)
            .filter(TherapistProfile.id == booking.therapist_id)
            .with_for_update()
            .first()
        )
        if therapist is not None:
            count = therapist.review_count or 0
            therapist.rating = round(((therapist.rating or 0.0) * count + rating) / (count + 1), 1)
            therapist.review_count = count + 1

        db.commit()
    except Exception:
        db.rollback()
        raise

    logger.info('Feedback %s recorded for booking %s (rating %s)', feedback.id, booking_id, rating)
    return feedback


def list_public_feedback(db: Session, therapist_id: int) -> list[Feedback]:
    return store.read_with_retries(
        db,
        lambda: db.query(Feedback)
        .filter(Feedback.therapist_id == therapist_id, Feedback.is_public.is_(True))
        .order_by(Feedback.created_at.desc())
        .all(),
    )


def list_feedback(db: Session, rating: int | None = None) -> list[Feedback]:
    query = db.query(Feedback)
    if rating is not None:
        query = query.filter(Feedback.rating == rating)
    return store.read_with_retries(db, lambda: query.order_by(Feedback.created_at.desc()).all())


def _get_feedback(db: Session, feedback_id: int) -> Feedback:
    feedback = db.query(Feedback).filter(Feedback.id == feedback_id).first()
    if feedback is None:
        raise NotFoundError(f'Feedback {feedback_id} not found.')
    return feedback


def set_feedback_visibility(db: Session, feedback_id: int, is_public: bool) -> Feedback:
    feedback = _get_feedback(db, feedback_id)
    feedback.is_public = is_public
    db.commit()
    return feedback


def delete_feedback(db: Session, feedback_id: int) -> None:
    feedback = _get_feedback(db, feedback_id)
    db.delete(feedback)
    db.commit()
    logger.info('Feedback %s deleted', feedback_id)

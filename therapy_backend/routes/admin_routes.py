from datetime import datetime, timedelta, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from therapy_backend.auth.dependencies import require_roles
from therapy_backend.database import get_db
from therapy_backend.models.booking import Booking, PaymentStatus
from therapy_backend.models.feedback import Feedback
from therapy_backend.models.therapist import TherapistProfile
from therapy_backend.models.user import ADMIN_ROLE, User
from therapy_backend.routes.common import database_unavailable, ensure_database_ready

router = APIRouter(tags=['admin'])

RECENT_BOOKINGS_DAYS = 7


class DashboardStatsResponse(BaseModel):
    total_bookings: int
    this_week_bookings: int
    total_clients: int
    total_revenue: float
    average_rating: float | None = None
    total_therapists: int


def compute_dashboard_stats(db: Session, now: datetime) -> DashboardStatsResponse:
    week_ago = now - timedelta(days=RECENT_BOOKINGS_DAYS)

    total_bookings = db.query(func.count(Booking.id)).scalar() or 0
    this_week_bookings = db.query(func.count(Booking.id)).filter(Booking.created_at >= week_ago).scalar() or 0
    total_clients = db.query(func.count(func.distinct(Booking.client_id))).scalar() or 0
    total_revenue = (
        db.query(func.coalesce(func.sum(Booking.amount), 0.0))
        .filter(Booking.payment_status == PaymentStatus.PAID)
        .scalar()
    )
    average_rating = db.query(func.avg(Feedback.rating)).scalar()
    total_therapists = (
        db.query(func.count(TherapistProfile.id)).filter(TherapistProfile.is_enabled.is_(True)).scalar() or 0
    )

    return DashboardStatsResponse(
        total_bookings=total_bookings,
        this_week_bookings=this_week_bookings,
        total_clients=total_clients,
        total_revenue=float(total_revenue or 0.0),
        average_rating=round(float(average_rating), 1) if average_rating is not None else None,
        total_therapists=total_therapists,
    )


@router.get('/stats', response_model=DashboardStatsResponse)
def get_dashboard_stats(
    current_user: User = Depends(require_roles(ADMIN_ROLE)),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return compute_dashboard_stats(db, datetime.now(timezone.utc))
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

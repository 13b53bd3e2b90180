"""Weekly availability model definitions."""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Time, UniqueConstraint
from therapy_backend.database import Base


class WeeklyAvailabilityRule(Base):
    """Working hours of a therapist for one day of the week.

    day_of_week: 0 (Monday) .. 6 (Sunday)
    """
    __tablename__ = "weekly_availability"
    __table_args__ = (
        UniqueConstraint("therapist_id", "day_of_week", name="uniq_therapist_day"),
        CheckConstraint("day_of_week BETWEEN 0 AND 6"),
    )

    id = Column(Integer, primary_key=True)
    therapist_id = Column(Integer, ForeignKey("therapists.id", ondelete="CASCADE"), nullable=False, index=True)
    day_of_week = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    break_start = Column(Time, nullable=True)
    break_minutes = Column(Integer, nullable=False, default=0)

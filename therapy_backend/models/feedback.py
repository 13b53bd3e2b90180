"""Feedback model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String
from therapy_backend.database import Base


class Feedback(Base):
    """A client's rating of a completed session."""
    __tablename__ = "feedback"

    id = Column(Integer, primary_key=True)
    booking_id = Column(Integer, ForeignKey("bookings.id", ondelete="CASCADE"), nullable=False, unique=True)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    client_name = Column(String, nullable=False, default="")
    therapist_id = Column(Integer, ForeignKey("therapists.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(String, nullable=True)
    is_public = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

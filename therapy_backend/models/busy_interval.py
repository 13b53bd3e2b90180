"""Busy interval model definitions."""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from therapy_backend.database import Base

SLOT_BLOCK = "slot"
DAY_BLOCK = "day"


class BusyInterval(Base):
    """A therapist-initiated block over [start_time, end_time)."""
    __tablename__ = "busy_intervals"

    id = Column(Integer, primary_key=True)
    therapist_id = Column(Integer, ForeignKey("therapists.id", ondelete="CASCADE"), nullable=False)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    reason = Column(String, nullable=False, default=SLOT_BLOCK)  # slot/day
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc))

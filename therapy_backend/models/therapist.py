"""Therapist profile model definitions."""

from sqlalchemy import Boolean, Column, Float, ForeignKey, Integer, String
from therapy_backend.database import Base


class TherapistProfile(Base):
    """Public profile of a therapist; shares its id with the user row.

    The row is also locked while a therapist's bookings or busy intervals
    are being written.
    """
    __tablename__ = "therapists"

    id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    name = Column(String, nullable=False)
    specialization = Column(String, nullable=False, default="")
    hourly_rate = Column(Float, nullable=False, default=0.0)
    is_enabled = Column(Boolean, nullable=False, default=True)
    rating = Column(Float, nullable=False, default=0.0)
    review_count = Column(Integer, nullable=False, default=0)

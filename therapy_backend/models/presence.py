"""Presence model definitions."""

from sqlalchemy import Column, DateTime, ForeignKey, Integer
from therapy_backend.database import Base


class Presence(Base):
    """Last heartbeat received from a user."""
    __tablename__ = "presence"

    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), primary_key=True)
    last_seen = Column(DateTime(timezone=True), nullable=False)

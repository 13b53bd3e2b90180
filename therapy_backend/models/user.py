"""User model definitions."""

from sqlalchemy import Column, Integer, String
from therapy_backend.database import Base

CLIENT_ROLE = "client"
THERAPIST_ROLE = "therapist"
ADMIN_ROLE = "admin"


class User(Base):
    """Represents an application user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String, unique=True, index=True, nullable=False)
    name = Column(String, nullable=False, default="")
    role = Column(String, nullable=False, default=CLIENT_ROLE)  # client/therapist/admin

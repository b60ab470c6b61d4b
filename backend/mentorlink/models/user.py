# backend/mentorlink/models/user.py
"""
User model (owned by the account/profile services).

Messaging only reads users: to confirm a recipient exists, to resolve display
identity (name, email, profile image) on messages and conversations, and to
authenticate bearer tokens.
"""

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, DateTime, String
import ulid

from ..database import Base


class UserRole:
    MENTOR = "mentor"
    STUDENT = "student"
    ORGANIZER = "organizer"
    ADMIN = "admin"


class User(Base):
    __tablename__ = "users"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    name = Column(String(200), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    role = Column(String(20), nullable=False, default=UserRole.STUDENT)
    profile_image = Column(String(500), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    def __repr__(self) -> str:
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"

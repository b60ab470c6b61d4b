# backend/mentorlink/models/mentorship.py
"""
Mentorship request model.

Connection requests are managed elsewhere; messaging consults accepted rows
only, in either mentor/student direction.
"""

from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import relationship
import ulid

from ..database import Base


class MentorshipStatus:
    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class MentorshipRequest(Base):
    __tablename__ = "mentorship_requests"

    id = Column(String(26), primary_key=True, default=lambda: str(ulid.ULID()))
    mentor_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    student_id = Column(String(26), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False, default=MentorshipStatus.PENDING)
    message = Column(Text, nullable=True)
    created_at = Column(
        DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    mentor = relationship("User", foreign_keys=[mentor_id])
    student = relationship("User", foreign_keys=[student_id])

    __table_args__ = (
        Index("idx_mentorship_mentor_status", "mentor_id", "status"),
        Index("idx_mentorship_student_status", "student_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<MentorshipRequest(id={self.id}, mentor={self.mentor_id}, "
            f"student={self.student_id}, status={self.status})>"
        )

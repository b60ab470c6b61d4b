# backend/mentorlink/repositories/mentorship_repository.py
"""
Read-only access to accepted mentorship connections.
"""

from typing import Set

from sqlalchemy import and_, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.mentorship import MentorshipRequest, MentorshipStatus
from .base_repository import BaseRepository


class MentorshipRepository(BaseRepository[MentorshipRequest]):
    def __init__(self, db: Session):
        super().__init__(db, MentorshipRequest)

    def has_accepted_connection(self, user_a: str, user_b: str) -> bool:
        """True if an accepted request links the two users in either role assignment."""
        try:
            row = (
                self.db.query(MentorshipRequest.id)
                .filter(
                    MentorshipRequest.status == MentorshipStatus.ACCEPTED,
                    or_(
                        and_(
                            MentorshipRequest.mentor_id == user_a,
                            MentorshipRequest.student_id == user_b,
                        ),
                        and_(
                            MentorshipRequest.mentor_id == user_b,
                            MentorshipRequest.student_id == user_a,
                        ),
                    ),
                )
                .first()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error checking connection {user_a}/{user_b}: {str(e)}")
            raise RepositoryException(f"Failed to check mentorship connection: {str(e)}")
        return row is not None

    def accepted_partner_ids(self, user_id: str) -> Set[str]:
        """Ids of every user with an accepted connection to ``user_id``."""
        try:
            rows = (
                self.db.query(MentorshipRequest.mentor_id, MentorshipRequest.student_id)
                .filter(
                    MentorshipRequest.status == MentorshipStatus.ACCEPTED,
                    or_(
                        MentorshipRequest.mentor_id == user_id,
                        MentorshipRequest.student_id == user_id,
                    ),
                )
                .all()
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing connections for {user_id}: {str(e)}")
            raise RepositoryException(f"Failed to list mentorship connections: {str(e)}")

        partners: Set[str] = set()
        for mentor_id, student_id in rows:
            partners.add(student_id if mentor_id == user_id else mentor_id)
        partners.discard(user_id)
        return partners

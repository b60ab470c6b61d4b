# backend/mentorlink/services/eligibility_service.py
"""
Eligibility gate: two users may message each other only while an accepted
mentorship connection links them, in either mentor/student direction.

Lookups fail closed. A storage error is logged and answered as "not
eligible" so callers return a Forbidden error instead of a 500.
"""

from typing import Set

from sqlalchemy.orm import Session

from ..core.exceptions import NoMentorshipConnectionException, RepositoryException
from ..database import SessionLocal
from ..repositories.factory import RepositoryFactory
from ..repositories.mentorship_repository import MentorshipRepository
from .base import BaseService


class EligibilityService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.repository: MentorshipRepository = RepositoryFactory.create_mentorship_repository(db)

    @BaseService.measure_operation("is_eligible")
    def is_eligible(self, user_a: str, user_b: str) -> bool:
        if not user_a or not user_b or user_a == user_b:
            return False
        try:
            return self.repository.has_accepted_connection(user_a, user_b)
        except RepositoryException as e:
            self.logger.warning(
                "[ELIGIBILITY] Connection lookup failed, denying: %s",
                e,
                extra={"user_a": user_a, "user_b": user_b},
            )
            return False

    def ensure_eligible(self, user_a: str, user_b: str) -> None:
        """
        Raises:
            NoMentorshipConnectionException: when the pair is not eligible
        """
        if not self.is_eligible(user_a, user_b):
            raise NoMentorshipConnectionException()

    @BaseService.measure_operation("connected_user_ids")
    def connected_user_ids(self, user_id: str) -> Set[str]:
        """Everyone ``user_id`` may currently message; empty on lookup failure."""
        try:
            return self.repository.accepted_partner_ids(user_id)
        except RepositoryException as e:
            self.logger.warning(
                "[ELIGIBILITY] Connection listing failed, treating as none: %s",
                e,
                extra={"user_id": user_id},
            )
            return set()


def check_pair_eligibility(user_a: str, user_b: str) -> bool:
    """
    Eligibility lookup on a short-lived session.

    Used by the realtime gateway, which has no request-scoped session.
    """
    db = SessionLocal()
    try:
        return EligibilityService(db).is_eligible(user_a, user_b)
    finally:
        db.close()

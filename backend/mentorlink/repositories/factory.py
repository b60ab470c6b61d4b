# backend/mentorlink/repositories/factory.py
"""
Repository Factory for MentorLink.

Services build their repositories here so tests can patch one seam.
"""

from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

# Avoid circular imports
if TYPE_CHECKING:
    from .conversation_repository import ConversationRepository
    from .mentorship_repository import MentorshipRepository
    from .message_repository import MessageRepository
    from .notification_repository import NotificationRepository
    from .user_repository import UserRepository


class RepositoryFactory:
    """One constructor per repository; imports are deferred to avoid cycles."""

    @staticmethod
    def create_conversation_repository(db: Session) -> "ConversationRepository":
        """Create repository for conversation operations."""
        from .conversation_repository import ConversationRepository

        return ConversationRepository(db)

    @staticmethod
    def create_message_repository(db: Session) -> "MessageRepository":
        """Create repository for message operations."""
        from .message_repository import MessageRepository

        return MessageRepository(db)

    @staticmethod
    def create_mentorship_repository(db: Session) -> "MentorshipRepository":
        """Create repository for mentorship connection lookups."""
        from .mentorship_repository import MentorshipRepository

        return MentorshipRepository(db)

    @staticmethod
    def create_user_repository(db: Session) -> "UserRepository":
        """Create repository for user lookups."""
        from .user_repository import UserRepository

        return UserRepository(db)

    @staticmethod
    def create_notification_repository(db: Session) -> "NotificationRepository":
        """Create repository for in-app notifications."""
        from .notification_repository import NotificationRepository

        return NotificationRepository(db)

"""
Repository layer for MentorLink.

Data access is kept out of services; services own transactions.
"""

from .conversation_repository import ConversationRepository
from .factory import RepositoryFactory
from .mentorship_repository import MentorshipRepository
from .message_repository import MessageRepository
from .notification_repository import NotificationRepository
from .user_repository import UserRepository

__all__ = [
    "BaseRepository",
    "ConversationRepository",
    "MentorshipRepository",
    "MessageRepository",
    "NotificationRepository",
    "RepositoryFactory",
    "UserRepository",
]

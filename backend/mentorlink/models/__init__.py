"""
Database models for the MentorLink messaging backend.

Users and mentorship requests are owned by other services and modelled here
only as far as messaging reads them.
"""

from .conversation import Conversation, ConversationParticipant
from .mentorship import MentorshipRequest, MentorshipStatus
from .message import Message, MessageDeletion
from .notification import Notification
from .user import User, UserRole

__all__ = [
    "Conversation",
    "ConversationParticipant",
    "MentorshipRequest",
    "MentorshipStatus",
    "Message",
    "MessageDeletion",
    "Notification",
    "User",
    "UserRole",
]

# backend/mentorlink/services/notification_service.py
"""
In-app notification sink for messaging.

Only the notification record is written; push/email delivery belongs to
other services.
"""

from typing import Optional

from sqlalchemy.orm import Session

from ..models.message import Message
from ..models.notification import Notification
from ..models.user import User
from ..repositories.factory import RepositoryFactory
from ..repositories.notification_repository import NotificationRepository
from .base import BaseService

NEW_MESSAGE_TITLE = "New Message"


class NotificationService(BaseService):
    def __init__(self, db: Session):
        super().__init__(db)
        self.repository: NotificationRepository = RepositoryFactory.create_notification_repository(
            db
        )

    @BaseService.measure_operation("notify_new_message")
    def notify_new_message(
        self, recipient_id: str, sender: Optional[User], message: Message
    ) -> Notification:
        """
        Record a "new message" notification for the recipient in its own
        transaction. Call only after the message itself has committed.
        """
        sender_name = sender.name if sender is not None else "Someone"
        with self.transaction():
            notification = self.repository.create(
                user_id=recipient_id,
                category="messages",
                type="new_message",
                title=NEW_MESSAGE_TITLE,
                body=f"{sender_name} sent you a message",
                link=f"/messages/{message.sender_id}",
                icon="message",
                data={
                    "messageId": message.id,
                    "senderId": message.sender_id,
                    "link": f"/messages/{message.sender_id}",
                },
            )
        self.logger.debug(
            "[NOTIFY] New message notification recorded",
            extra={"notification_id": notification.id, "recipient_id": recipient_id},
        )
        return notification

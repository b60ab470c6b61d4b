# backend/mentorlink/repositories/notification_repository.py
from sqlalchemy.orm import Session

from ..models.notification import Notification
from .base_repository import BaseRepository


class NotificationRepository(BaseRepository[Notification]):
    """In-app notification rows; written once per delivered message."""

    def __init__(self, db: Session):
        super().__init__(db, Notification)

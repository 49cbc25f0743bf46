import logging
from typing import Optional, Protocol

from sqlalchemy.engine import Engine
from sqlmodel import Session

from bookshare.models.notifications import (
    Notification,
    NotificationCategory,
    NotificationChannel,
    NotificationStatus,
)

logger = logging.getLogger(__name__)


class NotificationSink(Protocol):
    def notify(
        self,
        user_id: int,
        title: str,
        body: str,
        category: NotificationCategory,
        related_id: Optional[int] = None,
    ) -> None:
        ...


class DatabaseNotificationSink:
    """Stores in-app notifications in their own session, after the caller committed."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def notify(
        self,
        user_id: int,
        title: str,
        body: str,
        category: NotificationCategory,
        related_id: Optional[int] = None,
    ) -> None:
        with Session(self.engine) as session:
            notification = Notification(
                user_id=user_id,
                category=category,
                related_id=related_id,
                title=title,
                content=body,
                channel=NotificationChannel.inapp,
                status=NotificationStatus.sent,
            )
            session.add(notification)
            session.commit()
        logger.info(f"Notification '{title}' stored for user {user_id}")

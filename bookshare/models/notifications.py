from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import SQLModel, Field


class NotificationCategory(str, Enum):
    transaction = "transaction"
    credit = "credit"
    system = "system"
    report = "report"


class NotificationChannel(str, Enum):
    inapp = "inapp"
    email = "email"
    system = "system"


class NotificationStatus(str, Enum):
    sent = "sent"
    failed = "failed"


class Notification(SQLModel, table=True):
    """In-app inbox entry; written after the originating change committed."""

    __tablename__ = "notifications"

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: int = Field(index=True)

    category: NotificationCategory = NotificationCategory.system
    # transaction_id for cancellations, report_id for moderation
    related_id: Optional[int] = None

    title: str
    content: str

    channel: NotificationChannel = NotificationChannel.inapp
    status: NotificationStatus = NotificationStatus.sent
    is_read: bool = Field(default=False)

    created_at: datetime = Field(default_factory=datetime.utcnow)

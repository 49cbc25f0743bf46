import logging
from dataclasses import dataclass
from typing import Optional

from bookshare.models.notifications import NotificationCategory
from bookshare.notifications.channels import Channel
from bookshare.notifications.events import TrustEvent
from bookshare.notifications.rules import NOTIFICATION_RULES
from bookshare.notifications.sinks import NotificationSink
from bookshare.realtime.transport import MessageTransport
from bookshare.schemas.system_messages import SystemMessage

logger = logging.getLogger(__name__)


@dataclass
class PendingDispatch:
    event: TrustEvent
    user_id: Optional[int] = None
    title: str = ""
    body: str = ""
    category: NotificationCategory = NotificationCategory.system
    related_id: Optional[int] = None
    chat_id: Optional[int] = None
    sender_id: Optional[int] = None
    system_message: Optional[SystemMessage] = None


class Dispatcher:
    """
    Central notification dispatcher.

    Services queue side effects while their unit of work is open and call
    ``flush()`` once it has committed. Handles:
    - in-app user notifications
    - chat system messages (post + broadcast)

    Delivery failures are logged and never raised.
    """

    def __init__(self, notification_sink: NotificationSink, message_transport: MessageTransport):
        self.notification_sink = notification_sink
        self.message_transport = message_transport
        self._pending: list[PendingDispatch] = []

    @property
    def pending(self) -> list[PendingDispatch]:
        return list(self._pending)

    def queue(self, event: TrustEvent, **kwargs) -> None:
        self._pending.append(PendingDispatch(event=event, **kwargs))

    def discard(self) -> None:
        self._pending.clear()

    def flush(self) -> list[int]:
        """Deliver everything queued so far; returns ids of posted chat messages."""
        pending, self._pending = self._pending, []
        message_ids = []

        for item in pending:
            rules = NOTIFICATION_RULES.get(item.event, {})

            # -------------------------
            # USER IN-APP
            # -------------------------
            if rules.get(Channel.INAPP_USER) and item.user_id is not None:
                try:
                    self.notification_sink.notify(
                        item.user_id,
                        item.title,
                        item.body,
                        item.category,
                        item.related_id,
                    )
                except Exception:
                    logger.exception(
                        f"Notification for {item.event.value} to user {item.user_id} failed"
                    )

            # -------------------------
            # CHAT SYSTEM MESSAGE
            # -------------------------
            if (
                rules.get(Channel.CHAT_SYSTEM)
                and item.chat_id is not None
                and item.system_message is not None
            ):
                try:
                    payload = item.system_message.model_dump(mode="json")
                    message_id = self.message_transport.post_system_message(
                        item.chat_id, item.sender_id, payload
                    )
                    message_ids.append(message_id)
                    self.message_transport.broadcast(
                        item.chat_id,
                        {
                            "id": message_id,
                            "chat_id": item.chat_id,
                            "sender_id": item.sender_id,
                            "message_type": "sys",
                            "payload": payload,
                        },
                    )
                except Exception:
                    logger.exception(
                        f"System message for {item.event.value} in chat {item.chat_id} failed"
                    )

        return message_ids

import logging
from typing import Optional

from sqlmodel import Session

from bookshare.database import engine
from bookshare.dependencies.services import get_broadcaster
from bookshare.notifications import Dispatcher
from bookshare.notifications.sinks import DatabaseNotificationSink
from bookshare.realtime.transport import ChatBroadcaster, ChatMessageTransport
from bookshare.services.cancellation_expiry_service import ExpiryProcessor

logger = logging.getLogger(__name__)


def expire_cancellation_requests(broadcaster: Optional[ChatBroadcaster] = None) -> int:
    with Session(engine) as session:
        dispatcher = Dispatcher(
            DatabaseNotificationSink(engine),
            ChatMessageTransport(engine, broadcaster or get_broadcaster()),
        )
        processed = ExpiryProcessor(session, dispatcher).sweep()

    logger.info(f"Expiry job processed {processed} cancellation requests")
    return processed


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    expire_cancellation_requests()

from functools import lru_cache

from fastapi import Depends
from sqlmodel import Session

from bookshare.database import engine, get_session
from bookshare.notifications import Dispatcher
from bookshare.notifications.sinks import DatabaseNotificationSink, NotificationSink
from bookshare.realtime.transport import ChatBroadcaster, ChatMessageTransport, MessageTransport
from bookshare.services.cancellation_expiry_service import ExpiryProcessor
from bookshare.services.cancellation_service import CancellationNegotiator
from bookshare.services.report_adjudicator import ReportAdjudicator


@lru_cache
def get_broadcaster() -> ChatBroadcaster:
    """Listener registry shared by every request in this process."""
    return ChatBroadcaster()


def get_notification_sink() -> NotificationSink:
    return DatabaseNotificationSink(engine)


def get_message_transport(
    broadcaster: ChatBroadcaster = Depends(get_broadcaster),
) -> MessageTransport:
    return ChatMessageTransport(engine, broadcaster)


def get_dispatcher(
    notification_sink: NotificationSink = Depends(get_notification_sink),
    message_transport: MessageTransport = Depends(get_message_transport),
) -> Dispatcher:
    return Dispatcher(notification_sink, message_transport)


def get_cancellation_negotiator(
    session: Session = Depends(get_session),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> CancellationNegotiator:
    return CancellationNegotiator(session, dispatcher)


def get_expiry_processor(
    session: Session = Depends(get_session),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> ExpiryProcessor:
    return ExpiryProcessor(session, dispatcher)


def get_report_adjudicator(
    session: Session = Depends(get_session),
    dispatcher: Dispatcher = Depends(get_dispatcher),
) -> ReportAdjudicator:
    return ReportAdjudicator(session, dispatcher)

import json
import logging
from typing import Callable, Dict, List, Optional, Protocol

from sqlalchemy.engine import Engine
from sqlmodel import Session

from bookshare.models.chat import ChatMessage, ChatMessageType

logger = logging.getLogger(__name__)

Listener = Callable[[int, dict], None]


class MessageTransport(Protocol):
    def post_system_message(self, chat_id: int, sender_id: Optional[int], payload: dict) -> int:
        ...

    def broadcast(self, chat_id: int, message: dict) -> None:
        ...


class ChatBroadcaster:
    """In-process registry of chat listeners (a socket layer subscribes here)."""

    def __init__(self):
        # Map of chat_id -> listeners
        self.chat_listeners: Dict[int, List[Listener]] = {}

    def subscribe(self, chat_id: int, listener: Listener) -> None:
        self.chat_listeners.setdefault(chat_id, []).append(listener)

    def unsubscribe(self, chat_id: int, listener: Listener) -> None:
        listeners = self.chat_listeners.get(chat_id, [])
        if listener in listeners:
            listeners.remove(listener)
        if not listeners:
            self.chat_listeners.pop(chat_id, None)

    def publish(self, chat_id: int, message: dict) -> int:
        """Deliver to every listener of the chat; returns how many received it."""
        delivered = 0
        for listener in list(self.chat_listeners.get(chat_id, [])):
            try:
                listener(chat_id, message)
                delivered += 1
            except Exception:
                logger.exception(f"Chat listener failed for chat {chat_id}")
        return delivered


class ChatMessageTransport:
    """Stores system messages as chat messages and broadcasts them to listeners."""

    def __init__(self, engine: Engine, broadcaster: ChatBroadcaster):
        self.engine = engine
        self.broadcaster = broadcaster

    def post_system_message(self, chat_id: int, sender_id: Optional[int], payload: dict) -> int:
        with Session(self.engine) as session:
            message = ChatMessage(
                chat_id=chat_id,
                sender_id=sender_id,
                message=json.dumps(payload),
                message_type=ChatMessageType.SYSTEM,
                payload=payload,
            )
            session.add(message)
            session.commit()
            session.refresh(message)
            return message.id

    def broadcast(self, chat_id: int, message: dict) -> None:
        delivered = self.broadcaster.publish(chat_id, message)
        logger.debug(f"Broadcast to chat {chat_id} reached {delivered} listener(s)")


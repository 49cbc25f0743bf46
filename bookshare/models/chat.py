from datetime import datetime
from typing import Optional

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class ChatMessageType:
    TEXT = "text"
    IMAGE = "img"
    SYSTEM = "sys"


class Chat(SQLModel, table=True):
    __tablename__ = "chats"

    id: Optional[int] = Field(default=None, primary_key=True)
    transaction_id: Optional[int] = Field(default=None, foreign_key="transactions.id", index=True)
    borrower_id: int = Field(foreign_key="users.id")
    lender_id: int = Field(foreign_key="users.id")
    created: datetime = Field(default_factory=datetime.utcnow)


class ChatMessage(SQLModel, table=True):
    __tablename__ = "chat_messages"

    id: Optional[int] = Field(default=None, primary_key=True)
    chat_id: int = Field(foreign_key="chats.id", index=True)
    sender_id: int = Field(foreign_key="users.id")

    message: str
    message_type: str = Field(default=ChatMessageType.TEXT)
    # structured body of system messages, keyed by its "type" tag
    payload: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created: datetime = Field(default_factory=datetime.utcnow)

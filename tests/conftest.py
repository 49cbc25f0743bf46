"""Pytest configuration for bookshare tests."""
import os

# must be set before bookshare.config is imported
os.environ.setdefault("ENV", "test")
os.environ.setdefault("SQLALCHEMY_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret")

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient
from jose import jwt
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, SQLModel

from bookshare import models  # noqa: F401
from bookshare.config import settings
from bookshare.database import build_engine, get_session
from bookshare.dependencies.services import get_message_transport, get_notification_sink
from bookshare.main import app
from bookshare.models.book import Book
from bookshare.models.chat import Chat, ChatMessage
from bookshare.models.transaction import Transaction, TransactionStatus
from bookshare.models.user import User
from bookshare.notifications import Dispatcher


def create_access_token(user_id, expires_delta=timedelta(minutes=30), **claims):
    """Sign a token the way the auth service issues them."""
    payload = {**claims, "user_id": user_id, "exp": datetime.utcnow() + expires_delta}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


@pytest.fixture
def now():
    return datetime(2026, 3, 2, 12, 0, 0)


class RecordingSink:
    """Notification sink that keeps every notification in memory."""

    def __init__(self):
        self.notifications = []

    def notify(self, user_id, title, body, category, related_id=None):
        self.notifications.append({
            "user_id": user_id,
            "title": title,
            "body": body,
            "category": category,
            "related_id": related_id,
        })

    def for_user(self, user_id):
        return [n for n in self.notifications if n["user_id"] == user_id]


class RecordingTransport:
    """Message transport that records posted system messages and broadcasts."""

    def __init__(self):
        self.posted = []
        self.broadcasts = []

    def post_system_message(self, chat_id, sender_id, payload):
        self.posted.append({"chat_id": chat_id, "sender_id": sender_id, "payload": payload})
        return len(self.posted)

    def broadcast(self, chat_id, message):
        self.broadcasts.append((chat_id, message))

    def payload_types(self):
        return [p["payload"]["type"] for p in self.posted]


@pytest.fixture
def engine():
    engine = build_engine("sqlite://", poolclass=StaticPool)
    SQLModel.metadata.create_all(engine)
    yield engine
    SQLModel.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as session:
        yield session


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def transport():
    return RecordingTransport()


@pytest.fixture
def dispatcher(sink, transport):
    return Dispatcher(sink, transport)


@pytest.fixture
def make_user(session):
    counter = {"n": 0}

    def _make_user(credits=500, role="user", **kwargs):
        counter["n"] += 1
        n = counter["n"]
        user = User(
            first_name=kwargs.pop("first_name", f"User{n}"),
            last_name=kwargs.pop("last_name", "Tester"),
            username=kwargs.pop("username", f"user{n}"),
            email=kwargs.pop("email", f"user{n}@example.com"),
            role=role,
            credits=credits,
            **kwargs,
        )
        session.add(user)
        session.commit()
        session.refresh(user)
        return user

    return _make_user


@pytest.fixture
def make_deal(session, make_user):
    """Book + transaction + chat between a fresh borrower and lender."""

    def _make_deal(status=TransactionStatus.APPROVED, minimum_credits=100, title="Dune"):
        borrower = make_user()
        lender = make_user()

        book = Book(owner_id=lender.id, title=title, minimum_credits=minimum_credits, is_available=False)
        session.add(book)
        session.commit()
        session.refresh(book)

        transaction = Transaction(
            book_id=book.id,
            borrower_id=borrower.id,
            lender_id=lender.id,
            status=status,
        )
        session.add(transaction)
        session.commit()
        session.refresh(transaction)

        chat = Chat(transaction_id=transaction.id, borrower_id=borrower.id, lender_id=lender.id)
        session.add(chat)
        session.commit()
        session.refresh(chat)

        return {
            "borrower": borrower,
            "lender": lender,
            "book": book,
            "transaction": transaction,
            "chat": chat,
        }

    return _make_deal


@pytest.fixture
def make_message(session):

    def _make_message(chat, sender, text):
        message = ChatMessage(chat_id=chat.id, sender_id=sender.id, message=text)
        session.add(message)
        session.commit()
        session.refresh(message)
        return message

    return _make_message


@pytest.fixture
def client(session, sink, transport):
    app.dependency_overrides[get_session] = lambda: session
    app.dependency_overrides[get_notification_sink] = lambda: sink
    app.dependency_overrides[get_message_transport] = lambda: transport

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():

    def _auth_headers(user, **token_options):
        token = create_access_token(user.id, **token_options)
        return {"Authorization": f"Bearer {token}"}

    return _auth_headers

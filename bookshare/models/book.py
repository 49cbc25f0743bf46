from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class Book(SQLModel, table=True):
    __tablename__ = "books"

    id: Optional[int] = Field(default=None, primary_key=True)
    owner_id: int = Field(foreign_key="users.id", index=True)
    title: str
    author: Optional[str] = None

    # credits a borrower must hold to request this book; also the refund baseline
    minimum_credits: int = Field(default=0)
    is_available: bool = Field(default=True)

    created_at: datetime = Field(default_factory=datetime.utcnow)

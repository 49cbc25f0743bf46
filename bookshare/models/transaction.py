from sqlmodel import SQLModel, Field
from typing import Optional
from datetime import datetime


class TransactionStatus:
    WAITING = "waiting"
    APPROVED = "approved"
    ONGOING = "ongoing"
    BORROWED = "borrowed"
    RETURNED = "returned"
    CANCELLATION_PENDING = "cancellation_pending"
    CANCELLED = "cancelled"


CANCELLABLE_STATUSES = [
    TransactionStatus.WAITING,
    TransactionStatus.APPROVED,
    TransactionStatus.ONGOING,
]


class Transaction(SQLModel, table=True):
    __tablename__ = "transactions"

    id: Optional[int] = Field(default=None, primary_key=True)
    book_id: int = Field(foreign_key="books.id", index=True)
    borrower_id: int = Field(foreign_key="users.id", index=True)
    lender_id: int = Field(foreign_key="users.id", index=True)

    status: str = Field(default=TransactionStatus.WAITING)
    escrow_held: Optional[int] = None

    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def involves(self, user_id: int) -> bool:
        return user_id in (self.borrower_id, self.lender_id)

    def counterpart_of(self, user_id: int) -> int:
        return self.lender_id if user_id == self.borrower_id else self.borrower_id

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, Index, JSON, text
from sqlmodel import SQLModel, Field


class CancellationReason(str, Enum):
    changed_mind = "changed_mind"
    found_alternative = "found_alternative"
    condition_mismatch = "condition_mismatch"
    arrangement_issue = "arrangement_issue"
    personal_reason = "personal_reason"
    other = "other"


class RefundType(str, Enum):
    full = "full"
    partial = "partial"
    none = "none"


class CancellationStatus:
    PENDING = "pending"
    CONSENTED = "consented"
    REJECTED = "rejected"
    EXPIRED = "expired"
    PROCESSED = "processed"


# statuses that block a new request for the same transaction
ACTIVE_CANCELLATION_STATUSES = [
    CancellationStatus.PENDING,
    CancellationStatus.CONSENTED,
]


class CancellationAction:
    INITIATED = "initiated"
    CONSENTED = "consented"
    REJECTED = "rejected"
    SYSTEM = "system"


class CancellationRequest(SQLModel, table=True):
    __tablename__ = "cancellation_requests"
    # at most one active request per transaction
    __table_args__ = (
        Index(
            "uq_cancellation_requests_active_transaction",
            "transaction_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'consented')"),
            sqlite_where=text("status IN ('pending', 'consented')"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    transaction_id: int = Field(foreign_key="transactions.id", index=True)
    initiator_id: int = Field(foreign_key="users.id")
    other_party_id: int = Field(foreign_key="users.id")

    # Request details
    reason: str
    description: Optional[str] = None
    refund_type: str = Field(default=RefundType.full.value)
    refund_amount: Optional[int] = None

    # transaction status before it moved to cancellation_pending
    previous_status: str

    status: str = Field(default=CancellationStatus.PENDING, index=True)

    # Response from the other party (None until answered)
    other_confirmed: Optional[bool] = None
    other_response_date: Optional[datetime] = None

    # Timestamps
    expires_at: datetime = Field(index=True)
    completed_at: Optional[datetime] = None
    created: datetime = Field(default_factory=datetime.utcnow)


class CancellationHistory(SQLModel, table=True):
    __tablename__ = "cancellation_history"

    id: Optional[int] = Field(default=None, primary_key=True)
    cancellation_id: int = Field(foreign_key="cancellation_requests.id", index=True)

    action: str
    actor_id: Optional[int] = Field(default=None, foreign_key="users.id")  # None for system
    details: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created: datetime = Field(default_factory=datetime.utcnow)

from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field


class ReportReason(str, Enum):
    spam = "spam"
    abuse = "abuse"
    scam = "scam"
    other = "other"


class ReportStatus:
    PENDING = "pending"
    CHECKED = "checked"
    CLOSED = "closed"


class AppealStatus:
    NONE = "none"
    PENDING = "pending"
    RESOLVED = "resolved"


class AppealOutcome:
    UPHELD = "upheld"
    DENIED = "denied"


class ChatReport(SQLModel, table=True):
    __tablename__ = "chat_reports"

    id: Optional[int] = Field(default=None, primary_key=True)
    chat_id: int = Field(foreign_key="chats.id", index=True)
    reporter_id: int = Field(foreign_key="users.id", index=True)
    reported_id: int = Field(foreign_key="users.id", index=True)
    message_id: Optional[int] = Field(default=None, foreign_key="chat_messages.id")

    reason: str
    description: Optional[str] = None

    # Adjudication (written once at creation)
    confidence_score: float = Field(default=0.0)
    signal_count: int = Field(default=0)
    auto_resolved: bool = Field(default=False)
    status: str = Field(default=ReportStatus.PENDING)
    resolution_reason: Optional[str] = None
    penalty_applied: int = Field(default=0)

    # Appeal
    appeal_status: str = Field(default=AppealStatus.NONE)
    appeal_reason: Optional[str] = None
    appeal_date: Optional[datetime] = None
    appeal_outcome: Optional[str] = None

    created: datetime = Field(default_factory=datetime.utcnow, index=True)


class ReportSignal(SQLModel, table=True):
    __tablename__ = "report_signals"

    id: Optional[int] = Field(default=None, primary_key=True)
    report_id: int = Field(foreign_key="chat_reports.id", index=True)

    signal_type: str
    signal_weight: float
    signal_data: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created: datetime = Field(default_factory=datetime.utcnow)


class ReportAuditLog(SQLModel, table=True):
    __tablename__ = "report_audit_log"

    id: Optional[int] = Field(default=None, primary_key=True)
    report_id: int = Field(foreign_key="chat_reports.id", index=True)

    action: str        # created / resolved / appealed / appeal_resolved
    actor_type: str    # user / system / admin
    actor_id: Optional[int] = None
    old_status: Optional[str] = None
    new_status: Optional[str] = None
    details: Optional[dict] = Field(default=None, sa_column=Column(JSON))

    created: datetime = Field(default_factory=datetime.utcnow)


class ReporterTrustScore(SQLModel, table=True):
    __tablename__ = "reporter_trust_scores"

    user_id: int = Field(foreign_key="users.id", primary_key=True)

    trust_score: float = Field(default=50.0)
    total_reports: int = Field(default=0)
    valid_reports: int = Field(default=0)
    false_reports: int = Field(default=0)
    is_flagged: bool = Field(default=False)
    cooldown_until: Optional[datetime] = None
    last_report_date: Optional[datetime] = None

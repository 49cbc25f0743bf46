from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime

from bookshare.models.report import ReportReason


class ReportSubmit(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    chat_id: int = Field(alias="chatId", ge=1)
    reported_user_id: int = Field(alias="reportedUserId", ge=1)
    message_id: Optional[int] = Field(default=None, alias="messageId", ge=1)
    reason: ReportReason
    description: Optional[str] = Field(default=None, max_length=1000)


class ReportSubmitResponse(BaseModel):
    success: bool = True
    report_id: int
    auto_resolved: bool
    confidence: float
    signal_count: int
    penalty_applied: int
    message: str


class AppealRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    appeal_reason: str = Field(alias="appealReason", min_length=20, max_length=2000)


class AppealResolveRequest(BaseModel):
    upheld: bool
    note: Optional[str] = Field(default=None, max_length=2000)


class AppealResponse(BaseModel):
    success: bool = True
    report_id: int
    appeal_status: str
    appeal_outcome: Optional[str] = None
    message: str


class ReportSummary(BaseModel):
    id: int
    chat_id: int
    reported_id: int
    message_id: Optional[int] = None
    reason: str
    description: Optional[str] = None
    status: str
    confidence_score: float
    signal_count: int
    auto_resolved: bool
    penalty_applied: int
    appeal_status: str
    created: datetime


class ReportAgainstMe(BaseModel):
    id: int
    chat_id: int
    reason: str
    description: Optional[str] = None
    status: str
    confidence_score: float
    auto_resolved: bool
    penalty_applied: int
    appeal_status: str
    appeal_outcome: Optional[str] = None
    created: datetime


class TrustScoreResponse(BaseModel):
    trust_score: float
    total_reports: int
    valid_reports: int
    false_reports: int
    is_flagged: bool
    cooldown_until: Optional[datetime] = None

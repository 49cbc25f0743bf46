from pydantic import BaseModel, ConfigDict, Field
from typing import Any, Optional
from datetime import datetime

from bookshare.models.cancellation import CancellationReason, RefundType


class CancellationInitiate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    transaction_id: int = Field(alias="transactionId", ge=1)
    reason: CancellationReason
    description: Optional[str] = Field(default=None, max_length=1000)
    refund_type: RefundType = Field(default=RefundType.full, alias="refundType")
    refund_amount: Optional[int] = Field(default=None, alias="refundAmount", ge=0)


class CancellationRespond(BaseModel):
    consent: bool


class CancellationInitiateResponse(BaseModel):
    success: bool = True
    cancellation_id: int
    expires_at: datetime
    refund_amount: Optional[int] = None
    message: str


class CancellationRespondResponse(BaseModel):
    success: bool = True
    status: str
    message: str


class CancellationDetail(BaseModel):
    id: int
    transaction_id: int
    initiator_id: int
    other_party_id: int
    reason: str
    description: Optional[str] = None
    refund_type: str
    refund_amount: Optional[int] = None
    status: str
    other_confirmed: Optional[bool] = None
    other_response_date: Optional[datetime] = None
    expires_at: datetime
    completed_at: Optional[datetime] = None
    created: datetime


class CancellationStatusResponse(BaseModel):
    has_cancellation: bool
    cancellation: Optional[CancellationDetail] = None


class CancellationHistoryEntry(BaseModel):
    id: int
    action: str
    actor_id: Optional[int] = None
    details: Optional[dict[str, Any]] = None
    created: datetime


class CancellationHistoryResponse(BaseModel):
    history: list[CancellationHistoryEntry]


class ExpirySweepResponse(BaseModel):
    success: bool = True
    processed_count: int
    message: str

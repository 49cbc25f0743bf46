from datetime import datetime
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class CancellationRequestMessage(BaseModel):
    type: Literal["cancellation_request"] = "cancellation_request"
    cancellation_id: int
    transaction_id: int
    initiator_id: int
    reason: str
    description: Optional[str] = None
    refund_type: str
    refund_amount: Optional[int] = None
    expires_at: datetime
    book_title: str


class CancellationResponseMessage(BaseModel):
    type: Literal["cancellation_response"] = "cancellation_response"
    cancellation_id: int
    transaction_id: int
    responder_id: int
    status: Literal["approved", "rejected"]
    book_title: str


class CancellationAutoApprovedMessage(BaseModel):
    type: Literal["cancellation_auto_approved"] = "cancellation_auto_approved"
    cancellation_id: int
    transaction_id: int
    refund_amount: Optional[int] = None
    book_title: str


SystemMessage = Annotated[
    Union[
        CancellationRequestMessage,
        CancellationResponseMessage,
        CancellationAutoApprovedMessage,
    ],
    Field(discriminator="type"),
]

_system_message_adapter = TypeAdapter(SystemMessage)


def parse_system_message(payload: dict):
    """Rebuild the typed message from a stored chat payload."""
    return _system_message_adapter.validate_python(payload)

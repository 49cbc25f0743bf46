from typing import Optional

from fastapi import APIRouter, Depends, Header, status
from sqlmodel import Session

from bookshare.config import settings
from bookshare.database import get_session
from bookshare.dependencies.services import (
    get_cancellation_negotiator,
    get_expiry_processor,
)
from bookshare.errors import ForbiddenError
from bookshare.models.user import User
from bookshare.schemas.cancellation_schemas import (
    CancellationDetail,
    CancellationHistoryEntry,
    CancellationHistoryResponse,
    CancellationInitiate,
    CancellationInitiateResponse,
    CancellationRespond,
    CancellationRespondResponse,
    CancellationStatusResponse,
    ExpirySweepResponse,
)
from bookshare.services.cancellation_expiry_service import ExpiryProcessor
from bookshare.services.cancellation_service import (
    CancellationNegotiator,
    get_cancellation_history,
    get_latest_cancellation,
    get_transaction_for_party,
)
from bookshare.utils.token import get_current_user

router = APIRouter()


@router.post(
    "/initiate",
    status_code=status.HTTP_201_CREATED,
    response_model=CancellationInitiateResponse,
)
def initiate_cancellation(
    request: CancellationInitiate,
    negotiator: CancellationNegotiator = Depends(get_cancellation_negotiator),
    current_user: User = Depends(get_current_user),
):
    """Borrower or lender asks to cancel an in-flight transaction"""
    result = negotiator.initiate(
        transaction_id=request.transaction_id,
        initiator_id=current_user.id,
        reason=request.reason.value,
        description=request.description,
        refund_type=request.refund_type.value,
        refund_amount=request.refund_amount,
    )

    return CancellationInitiateResponse(
        cancellation_id=result.cancellation_id,
        expires_at=result.expires_at,
        refund_amount=result.refund_amount,
        message="Cancellation request initiated. Awaiting response from the other party.",
    )


@router.post("/expire-old-requests", response_model=ExpirySweepResponse)
def expire_old_requests(
    x_scheduler_key: Optional[str] = Header(default=None),
    processor: ExpiryProcessor = Depends(get_expiry_processor),
):
    """Scheduler trigger: auto-approve requests whose response window lapsed"""
    if settings.scheduler_key and x_scheduler_key != settings.scheduler_key:
        raise ForbiddenError("Invalid scheduler key")

    processed = processor.sweep()

    return ExpirySweepResponse(
        processed_count=processed,
        message=f"{processed} expired cancellation requests processed",
    )


@router.post("/{cancellation_id}/respond", response_model=CancellationRespondResponse)
def respond_to_cancellation(
    cancellation_id: int,
    request: CancellationRespond,
    negotiator: CancellationNegotiator = Depends(get_cancellation_negotiator),
    current_user: User = Depends(get_current_user),
):
    """Other party consents to or rejects the cancellation"""
    cancellation = negotiator.respond(cancellation_id, current_user.id, request.consent)

    if request.consent:
        message = "Cancellation approved. Transaction has been cancelled."
    else:
        message = "Cancellation request rejected. Transaction continues."

    return CancellationRespondResponse(status=cancellation.status, message=message)


@router.get("/transaction/{transaction_id}", response_model=CancellationStatusResponse)
def get_cancellation_status(
    transaction_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    get_transaction_for_party(session, transaction_id, current_user.id)

    cancellation = get_latest_cancellation(session, transaction_id)
    if not cancellation:
        return CancellationStatusResponse(has_cancellation=False)

    return CancellationStatusResponse(
        has_cancellation=True,
        cancellation=CancellationDetail.model_validate(cancellation, from_attributes=True),
    )


@router.get("/{cancellation_id}/history", response_model=CancellationHistoryResponse)
def get_history(
    cancellation_id: int,
    session: Session = Depends(get_session),
    current_user: User = Depends(get_current_user),
):
    history = get_cancellation_history(session, cancellation_id, current_user.id)

    return CancellationHistoryResponse(
        history=[
            CancellationHistoryEntry.model_validate(entry, from_attributes=True)
            for entry in history
        ]
    )

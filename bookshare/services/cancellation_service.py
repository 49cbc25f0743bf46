import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from bookshare.config import settings
from bookshare.errors import (
    ConflictError,
    ForbiddenError,
    GoneError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from bookshare.models.book import Book
from bookshare.models.cancellation import (
    ACTIVE_CANCELLATION_STATUSES,
    CancellationAction,
    CancellationHistory,
    CancellationReason,
    CancellationRequest,
    CancellationStatus,
    RefundType,
)
from bookshare.models.chat import Chat
from bookshare.models.notifications import NotificationCategory
from bookshare.models.transaction import (
    CANCELLABLE_STATUSES,
    Transaction,
    TransactionStatus,
)
from bookshare.notifications import Dispatcher, TrustEvent
from bookshare.schemas.system_messages import (
    CancellationRequestMessage,
    CancellationResponseMessage,
)
from bookshare.services.audit_service import log_cancellation_event

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 1000


@dataclass
class InitiatedCancellation:
    cancellation_id: int
    expires_at: datetime
    refund_amount: Optional[int]


def calculate_refund_amount(
    refund_type: str,
    baseline: int,
    refund_amount: Optional[int] = None,
    partial_ratio: Optional[float] = None,
) -> Optional[int]:
    """
    Refund owed for a cancelled transaction.

    full    -> the whole baseline (book's minimum credits)
    partial -> explicit amount when given, else floor(baseline * ratio)
    none    -> None
    """
    if refund_type == RefundType.full.value:
        return baseline
    if refund_type == RefundType.partial.value:
        if refund_amount is not None:
            return refund_amount
        ratio = settings.partial_refund_ratio if partial_ratio is None else partial_ratio
        return math.floor(baseline * ratio)
    return None


def find_chat_for_transaction(session: Session, transaction_id: int) -> Optional[Chat]:
    return session.exec(
        select(Chat).where(Chat.transaction_id == transaction_id).order_by(Chat.id)
    ).first()


def process_cancellation(
    session: Session,
    cancellation: CancellationRequest,
    now: Optional[datetime] = None,
) -> None:
    """
    Finish a consented cancellation: request -> processed, transaction ->
    cancelled, book available again. The refund is only recorded; the credit
    ledger applies it.
    """
    now = now or datetime.utcnow()

    cancellation.status = CancellationStatus.PROCESSED
    cancellation.completed_at = now
    session.add(cancellation)

    transaction = session.get(Transaction, cancellation.transaction_id)
    if transaction:
        transaction.status = TransactionStatus.CANCELLED
        transaction.updated_at = now
        session.add(transaction)

        book = session.get(Book, transaction.book_id)
        if book:
            book.is_available = True
            session.add(book)

    log_cancellation_event(
        session,
        cancellation_id=cancellation.id,
        action=CancellationAction.SYSTEM,
        details={"event": "completed", "refund_amount": cancellation.refund_amount},
    )


class CancellationNegotiator:
    """Two-party consent protocol for cancelling an in-flight transaction."""

    def __init__(self, session: Session, dispatcher: Dispatcher, now: Optional[datetime] = None):
        self.session = session
        self.dispatcher = dispatcher
        self._now = now

    @property
    def now(self) -> datetime:
        return self._now or datetime.utcnow()

    # ------------------------------------------------------------------
    # initiate
    # ------------------------------------------------------------------

    def initiate(
        self,
        transaction_id: int,
        initiator_id: int,
        reason: str,
        description: Optional[str] = None,
        refund_type: Optional[str] = None,
        refund_amount: Optional[int] = None,
    ) -> InitiatedCancellation:
        refund_type = refund_type or RefundType.full.value
        self._validate_initiation(reason, description, refund_type, refund_amount)

        try:
            result = self._initiate(
                transaction_id, initiator_id, reason, description, refund_type, refund_amount
            )
        except Exception:
            self.session.rollback()
            self.dispatcher.discard()
            raise

        self.dispatcher.flush()
        return result

    def _initiate(self, transaction_id, initiator_id, reason, description, refund_type, refund_amount):
        now = self.now

        transaction = self.session.exec(
            select(Transaction).where(Transaction.id == transaction_id).with_for_update()
        ).first()
        if not transaction:
            raise NotFoundError("Transaction not found")

        if not transaction.involves(initiator_id):
            raise ForbiddenError("You are not part of this transaction")

        existing = self.session.exec(
            select(CancellationRequest.id)
            .where(CancellationRequest.transaction_id == transaction_id)
            .where(CancellationRequest.status.in_(ACTIVE_CANCELLATION_STATUSES))
        ).first()
        if existing:
            raise ConflictError(
                "A cancellation request is already in progress for this transaction",
                cancellation_id=existing,
            )

        if transaction.status not in CANCELLABLE_STATUSES:
            raise InvalidStateError(f"Cannot cancel transaction with status: {transaction.status}")

        book = self.session.get(Book, transaction.book_id)
        baseline = book.minimum_credits if book else 0
        if (
            refund_type == RefundType.partial.value
            and refund_amount is not None
            and refund_amount > baseline
        ):
            raise ValidationError("Validation failed", details=[{
                "field": "refund_amount",
                "message": f"refund_amount cannot exceed {baseline} credits",
            }])

        other_party_id = transaction.counterpart_of(initiator_id)
        calculated_refund = calculate_refund_amount(refund_type, baseline, refund_amount)
        expires_at = now + timedelta(hours=settings.cancellation_window_hours)

        cancellation = CancellationRequest(
            transaction_id=transaction_id,
            initiator_id=initiator_id,
            other_party_id=other_party_id,
            reason=reason,
            description=description,
            refund_type=refund_type,
            refund_amount=calculated_refund,
            previous_status=transaction.status,
            status=CancellationStatus.PENDING,
            expires_at=expires_at,
            created=now,
        )
        self.session.add(cancellation)

        transaction.status = TransactionStatus.CANCELLATION_PENDING
        transaction.updated_at = now
        self.session.add(transaction)
        try:
            self.session.flush()
        except IntegrityError:
            raise ConflictError("A cancellation request is already in progress for this transaction")

        log_cancellation_event(
            self.session,
            cancellation_id=cancellation.id,
            action=CancellationAction.INITIATED,
            actor_id=initiator_id,
            details={
                "reason": reason,
                "refund_type": refund_type,
                "refund_amount": calculated_refund,
            },
        )

        book_title = book.title if book else ""
        chat = find_chat_for_transaction(self.session, transaction_id)
        self.dispatcher.queue(
            TrustEvent.CANCELLATION_REQUESTED,
            user_id=other_party_id,
            title="Cancellation Request",
            body=(
                f'A cancellation request has been made for "{book_title}". Please review '
                f"and respond within {settings.cancellation_window_hours} hours."
            ),
            category=NotificationCategory.transaction,
            related_id=transaction_id,
            chat_id=chat.id if chat else None,
            sender_id=initiator_id,
            system_message=CancellationRequestMessage(
                cancellation_id=cancellation.id,
                transaction_id=transaction_id,
                initiator_id=initiator_id,
                reason=reason,
                description=description,
                refund_type=refund_type,
                refund_amount=calculated_refund,
                expires_at=expires_at,
                book_title=book_title,
            ),
        )

        self.session.commit()
        logger.info(
            f"Cancellation {cancellation.id} initiated on transaction {transaction_id} "
            f"by user {initiator_id}"
        )

        return InitiatedCancellation(
            cancellation_id=cancellation.id,
            expires_at=expires_at,
            refund_amount=calculated_refund,
        )

    def _validate_initiation(self, reason, description, refund_type, refund_amount):
        details = []
        if reason not in {r.value for r in CancellationReason}:
            details.append({"field": "reason", "message": "Invalid cancellation reason"})
        if refund_type not in {r.value for r in RefundType}:
            details.append({"field": "refund_type", "message": "Invalid refund type"})
        if refund_amount is not None and refund_amount < 0:
            details.append({"field": "refund_amount", "message": "refund_amount cannot be negative"})
        if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
            details.append({
                "field": "description",
                "message": f"description must be at most {MAX_DESCRIPTION_LENGTH} characters",
            })
        if details:
            raise ValidationError("Validation failed", details=details)

    # ------------------------------------------------------------------
    # respond
    # ------------------------------------------------------------------

    def respond(self, cancellation_id: int, responder_id: int, consent: bool) -> CancellationRequest:
        try:
            cancellation = self._respond(cancellation_id, responder_id, consent)
        except Exception:
            self.session.rollback()
            self.dispatcher.discard()
            raise

        self.dispatcher.flush()
        return cancellation

    def _respond(self, cancellation_id, responder_id, consent):
        now = self.now

        cancellation = self.session.exec(
            select(CancellationRequest)
            .where(CancellationRequest.id == cancellation_id)
            .with_for_update()
        ).first()
        if not cancellation:
            raise NotFoundError("Cancellation request not found")

        if cancellation.other_party_id != responder_id:
            raise ForbiddenError("You are not authorized to respond to this request")

        if cancellation.other_confirmed is not None:
            raise ConflictError("You have already responded to this request")

        if cancellation.status != CancellationStatus.PENDING:
            raise InvalidStateError(
                f"Cannot respond to cancellation with status: {cancellation.status}"
            )

        if cancellation.expires_at < now:
            self._expire(cancellation, now)
            self.session.commit()
            self.dispatcher.flush()
            raise GoneError("This cancellation request has expired")

        new_status = CancellationStatus.CONSENTED if consent else CancellationStatus.REJECTED
        # exactly one of respond()/sweep() may move the row out of pending
        result = self.session.exec(
            update(CancellationRequest)
            .where(CancellationRequest.id == cancellation.id)
            .where(CancellationRequest.status == CancellationStatus.PENDING)
            .where(CancellationRequest.other_confirmed.is_(None))
            .values(
                status=new_status,
                other_confirmed=consent,
                other_response_date=now,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self.session.refresh(cancellation)
            if cancellation.expires_at < now or cancellation.other_confirmed is None:
                raise GoneError("This cancellation request has expired")
            raise ConflictError("You have already responded to this request")
        self.session.refresh(cancellation)

        transaction = self.session.get(Transaction, cancellation.transaction_id)
        book = self.session.get(Book, transaction.book_id) if transaction else None
        book_title = book.title if book else ""
        chat = find_chat_for_transaction(self.session, cancellation.transaction_id)

        if consent:
            log_cancellation_event(
                self.session,
                cancellation_id=cancellation.id,
                action=CancellationAction.CONSENTED,
                actor_id=responder_id,
            )
            process_cancellation(self.session, cancellation, now)

            self.dispatcher.queue(
                TrustEvent.CANCELLATION_APPROVED,
                user_id=cancellation.initiator_id,
                title="Cancellation Approved",
                body=(
                    f'Your cancellation request for "{book_title}" has been approved. '
                    f"The transaction has been cancelled."
                ),
                category=NotificationCategory.transaction,
                related_id=cancellation.transaction_id,
                chat_id=chat.id if chat else None,
                sender_id=responder_id,
                system_message=CancellationResponseMessage(
                    cancellation_id=cancellation.id,
                    transaction_id=cancellation.transaction_id,
                    responder_id=responder_id,
                    status="approved",
                    book_title=book_title,
                ),
            )
        else:
            if transaction:
                transaction.status = cancellation.previous_status or TransactionStatus.APPROVED
                transaction.updated_at = now
                self.session.add(transaction)

            log_cancellation_event(
                self.session,
                cancellation_id=cancellation.id,
                action=CancellationAction.REJECTED,
                actor_id=responder_id,
            )

            self.dispatcher.queue(
                TrustEvent.CANCELLATION_REJECTED,
                user_id=cancellation.initiator_id,
                title="Cancellation Rejected",
                body=(
                    f'Your cancellation request for "{book_title}" has been rejected. '
                    f"The transaction continues."
                ),
                category=NotificationCategory.transaction,
                related_id=cancellation.transaction_id,
                chat_id=chat.id if chat else None,
                sender_id=responder_id,
                system_message=CancellationResponseMessage(
                    cancellation_id=cancellation.id,
                    transaction_id=cancellation.transaction_id,
                    responder_id=responder_id,
                    status="rejected",
                    book_title=book_title,
                ),
            )

        self.session.commit()
        self.session.refresh(cancellation)
        logger.info(
            f"Cancellation {cancellation.id} {'approved' if consent else 'rejected'} "
            f"by user {responder_id}"
        )
        return cancellation

    def _expire(self, cancellation: CancellationRequest, now: datetime) -> None:
        """A late response found the window closed: the request lapses unprocessed."""
        result = self.session.exec(
            update(CancellationRequest)
            .where(CancellationRequest.id == cancellation.id)
            .where(CancellationRequest.status == CancellationStatus.PENDING)
            .values(status=CancellationStatus.EXPIRED)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            return
        self.session.refresh(cancellation)

        transaction = self.session.get(Transaction, cancellation.transaction_id)
        if transaction and transaction.status == TransactionStatus.CANCELLATION_PENDING:
            transaction.status = cancellation.previous_status or TransactionStatus.APPROVED
            transaction.updated_at = now
            self.session.add(transaction)

        log_cancellation_event(
            self.session,
            cancellation_id=cancellation.id,
            action=CancellationAction.SYSTEM,
            details={"event": "expired"},
        )

        self.dispatcher.queue(
            TrustEvent.CANCELLATION_EXPIRED,
            user_id=cancellation.initiator_id,
            title="Cancellation Expired",
            body="Your cancellation request expired before it could be answered.",
            category=NotificationCategory.transaction,
            related_id=cancellation.transaction_id,
        )
        logger.info(f"Cancellation {cancellation.id} expired on late response")


# ----------------------------------------------------------------------
# read views
# ----------------------------------------------------------------------

def get_transaction_for_party(session: Session, transaction_id: int, user_id: int) -> Transaction:
    transaction = session.get(Transaction, transaction_id)
    if not transaction:
        raise NotFoundError("Transaction not found")
    if not transaction.involves(user_id):
        raise ForbiddenError("Access denied")
    return transaction


def get_latest_cancellation(session: Session, transaction_id: int) -> Optional[CancellationRequest]:
    return session.exec(
        select(CancellationRequest)
        .where(CancellationRequest.transaction_id == transaction_id)
        .order_by(CancellationRequest.created.desc(), CancellationRequest.id.desc())
    ).first()


def get_cancellation_history(
    session: Session,
    cancellation_id: int,
    user_id: int,
) -> list[CancellationHistory]:
    cancellation = session.get(CancellationRequest, cancellation_id)
    if not cancellation:
        raise NotFoundError("Cancellation not found")

    get_transaction_for_party(session, cancellation.transaction_id, user_id)

    return session.exec(
        select(CancellationHistory)
        .where(CancellationHistory.cancellation_id == cancellation_id)
        .order_by(CancellationHistory.created, CancellationHistory.id)
    ).all()

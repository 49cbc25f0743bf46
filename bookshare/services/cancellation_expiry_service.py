import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlmodel import Session, select

from bookshare.models.book import Book
from bookshare.models.cancellation import (
    CancellationAction,
    CancellationRequest,
    CancellationStatus,
)
from bookshare.models.notifications import NotificationCategory
from bookshare.models.transaction import Transaction
from bookshare.notifications import Dispatcher, TrustEvent
from bookshare.schemas.system_messages import CancellationAutoApprovedMessage
from bookshare.services.audit_service import log_cancellation_event
from bookshare.services.cancellation_service import (
    find_chat_for_transaction,
    process_cancellation,
)

logger = logging.getLogger(__name__)


class ExpiryProcessor:
    """
    Auto-approves cancellation requests whose response window lapsed.

    Silence from the other party counts as consent. Safe to run repeatedly or
    concurrently: each row leaves ``pending`` through a conditional update, so
    a row already answered or swept is skipped.
    """

    def __init__(self, session: Session, dispatcher: Dispatcher):
        self.session = session
        self.dispatcher = dispatcher

    def sweep(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()

        try:
            processed = self._sweep(now)
            self.session.commit()
        except Exception:
            self.session.rollback()
            self.dispatcher.discard()
            logger.exception("Cancellation expiry sweep failed")
            raise

        # broadcasts only after the commit succeeded
        self.dispatcher.flush()
        logger.info(f"Auto-approved {processed} expired cancellation requests")
        return processed

    def _sweep(self, now: datetime) -> int:
        expired = self.session.exec(
            select(CancellationRequest)
            .where(CancellationRequest.status == CancellationStatus.PENDING)
            .where(CancellationRequest.expires_at < now)
            .order_by(CancellationRequest.expires_at)
            .with_for_update(skip_locked=True)
        ).all()

        processed = 0
        for cancellation in expired:
            result = self.session.exec(
                update(CancellationRequest)
                .where(CancellationRequest.id == cancellation.id)
                .where(CancellationRequest.status == CancellationStatus.PENDING)
                .values(
                    status=CancellationStatus.CONSENTED,
                    other_confirmed=True,
                    other_response_date=now,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                # answered in the meantime
                continue
            self.session.refresh(cancellation)

            log_cancellation_event(
                self.session,
                cancellation_id=cancellation.id,
                action=CancellationAction.SYSTEM,
                details={"event": "auto_approved", "expired_at": cancellation.expires_at.isoformat()},
            )
            process_cancellation(self.session, cancellation, now)
            self._queue_notifications(cancellation)
            processed += 1

        return processed

    def _queue_notifications(self, cancellation: CancellationRequest) -> None:
        transaction = self.session.get(Transaction, cancellation.transaction_id)
        book = self.session.get(Book, transaction.book_id) if transaction else None
        book_title = book.title if book else ""
        chat = find_chat_for_transaction(self.session, cancellation.transaction_id)

        self.dispatcher.queue(
            TrustEvent.CANCELLATION_AUTO_APPROVED,
            user_id=cancellation.initiator_id,
            title="Cancellation Auto-Approved",
            body=(
                f'No response was received for your cancellation request on "{book_title}" '
                f"before the deadline. The cancellation has been processed automatically."
            ),
            category=NotificationCategory.transaction,
            related_id=cancellation.transaction_id,
            chat_id=chat.id if chat else None,
            sender_id=cancellation.initiator_id,
            system_message=CancellationAutoApprovedMessage(
                cancellation_id=cancellation.id,
                transaction_id=cancellation.transaction_id,
                refund_amount=cancellation.refund_amount,
                book_title=book_title,
            ),
        )
        self.dispatcher.queue(
            TrustEvent.CANCELLATION_AUTO_APPROVED,
            user_id=cancellation.other_party_id,
            title="Cancellation Auto-Approved",
            body=(
                f'The cancellation request for "{book_title}" was not answered in time '
                f"and has been processed automatically."
            ),
            category=NotificationCategory.transaction,
            related_id=cancellation.transaction_id,
        )

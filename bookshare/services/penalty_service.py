import logging

from bookshare.config import settings
from bookshare.models.notifications import NotificationCategory
from bookshare.notifications import Dispatcher, TrustEvent
from bookshare.services.credit_ledger import CreditLedger

logger = logging.getLogger(__name__)


class PenaltyApplier:
    """Deducts the flat penalty for a validated report."""

    def __init__(self, ledger: CreditLedger, dispatcher: Dispatcher):
        self.ledger = ledger
        self.dispatcher = dispatcher

    @staticmethod
    def penalty_for(reason: str) -> int:
        penalties = settings.penalties
        return penalties.get(reason, penalties["other"])

    def apply(self, reported_user_id: int, reason: str, report_id: int) -> int:
        penalty = self.penalty_for(reason)

        balances = self.ledger.deduct(
            reported_user_id,
            penalty,
            reason=f"Penalty for {reason} violation",
            report_id=report_id,
            remark=f"Report ID: {report_id}",
        )
        if balances is None:
            return 0

        old_balance, new_balance = balances
        deducted = old_balance - new_balance

        self.dispatcher.queue(
            TrustEvent.REPORT_PENALTY,
            user_id=reported_user_id,
            title="Account Penalty",
            body=(
                f"You have been penalized {deducted} credits for violating "
                f"community guidelines ({reason})."
            ),
            category=NotificationCategory.credit,
            related_id=report_id,
        )
        logger.info(
            f"Penalty of {deducted} (nominal {penalty}) applied to user {reported_user_id} "
            f"for report {report_id}"
        )
        return deducted

import logging
from typing import Optional, Protocol

from sqlmodel import Session

from bookshare.models.credit_history import CreditHistory
from bookshare.models.user import User

logger = logging.getLogger(__name__)


class CreditLedger(Protocol):
    def get_balance(self, user_id: int) -> Optional[int]:
        ...

    def deduct(
        self,
        user_id: int,
        amount: int,
        reason: str,
        ref_transaction_id: Optional[int] = None,
        report_id: Optional[int] = None,
        remark: Optional[str] = None,
    ) -> Optional[tuple[int, int]]:
        ...

    def credit(
        self,
        user_id: int,
        amount: int,
        reason: str,
        ref_transaction_id: Optional[int] = None,
        report_id: Optional[int] = None,
        remark: Optional[str] = None,
    ) -> Optional[tuple[int, int]]:
        ...


class SessionCreditLedger:
    """Moves credits on ``User.credits`` inside the caller's transaction."""

    def __init__(self, session: Session):
        self.session = session

    def get_balance(self, user_id: int) -> Optional[int]:
        user = self.session.get(User, user_id)
        return user.credits if user else None

    def _apply(self, user_id, change, reason, ref_transaction_id, report_id, remark):
        user = self.session.get(User, user_id)
        if not user:
            logger.warning(f"Credit change for missing user {user_id} skipped")
            return None

        old_balance = user.credits
        new_balance = max(0, old_balance + change)
        user.credits = new_balance
        self.session.add(user)

        self.session.add(CreditHistory(
            user_id=user_id,
            transaction_id=ref_transaction_id,
            report_id=report_id,
            credit_change=new_balance - old_balance,
            reason=reason,
            old_balance=old_balance,
            new_balance=new_balance,
            remark=remark,
        ))
        logger.info(f"Credits for user {user_id}: {old_balance} -> {new_balance} ({reason})")
        return old_balance, new_balance

    def deduct(self, user_id, amount, reason, ref_transaction_id=None, report_id=None, remark=None):
        # balance is floored at 0
        return self._apply(user_id, -abs(amount), reason, ref_transaction_id, report_id, remark)

    def credit(self, user_id, amount, reason, ref_transaction_id=None, report_id=None, remark=None):
        return self._apply(user_id, abs(amount), reason, ref_transaction_id, report_id, remark)

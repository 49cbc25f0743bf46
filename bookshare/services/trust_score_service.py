import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from bookshare.config import settings
from bookshare.models.report import ReporterTrustScore
from bookshare.services.confidence import is_in_cooldown

logger = logging.getLogger(__name__)

MIN_TRUST = 0.0
MAX_TRUST = 100.0


def clamp_trust(value: float) -> float:
    return max(MIN_TRUST, min(MAX_TRUST, value))


class TrustScoreStore:
    """Reporter trust scores, counters and cooldown state."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, user_id: int) -> Optional[ReporterTrustScore]:
        return self.session.get(ReporterTrustScore, user_id)

    def get_or_create(self, user_id: int, lock: bool = False) -> ReporterTrustScore:
        """
        Load the reporter's row, creating it with the default score.

        With ``lock`` the row is selected FOR UPDATE so submissions from one
        reporter are serialised for the rest of the transaction.
        """
        trust = self.get(user_id)
        if trust is None:
            try:
                with self.session.begin_nested():
                    self.session.add(
                        ReporterTrustScore(user_id=user_id, trust_score=settings.default_trust_score)
                    )
            except IntegrityError:
                # another submission created it first
                logger.info(f"Trust score for reporter {user_id} already created, reloading")
            lock = True

        if lock:
            trust = self.session.exec(
                select(ReporterTrustScore)
                .where(ReporterTrustScore.user_id == user_id)
                .with_for_update()
                .execution_options(populate_existing=True)
            ).one()
        return trust

    def is_in_cooldown(self, trust: ReporterTrustScore, now: Optional[datetime] = None) -> bool:
        return is_in_cooldown(trust, now)

    def start_cooldown(self, trust: ReporterTrustScore, now: Optional[datetime] = None) -> datetime:
        now = now or datetime.utcnow()
        trust.cooldown_until = now + timedelta(minutes=settings.report_cooldown_minutes)
        self.session.add(trust)
        logger.info(f"Reporter {trust.user_id} in cooldown until {trust.cooldown_until}")
        return trust.cooldown_until

    def record_valid_report(self, trust: ReporterTrustScore, now: Optional[datetime] = None) -> None:
        trust.trust_score = clamp_trust(trust.trust_score + settings.valid_report_trust_bonus)
        trust.valid_reports += 1
        trust.total_reports += 1
        trust.last_report_date = now or datetime.utcnow()
        self.session.add(trust)

    def record_pending_report(self, trust: ReporterTrustScore, now: Optional[datetime] = None) -> None:
        trust.total_reports += 1
        trust.last_report_date = now or datetime.utcnow()
        self.session.add(trust)

    def record_false_report(self, user_id: int, now: Optional[datetime] = None) -> ReporterTrustScore:
        """A report of this user was overturned on appeal."""
        trust = self.get_or_create(user_id, lock=True)
        trust.trust_score = clamp_trust(trust.trust_score - settings.false_report_trust_penalty)
        trust.false_reports += 1
        if trust.trust_score < settings.trust_flag_threshold:
            trust.is_flagged = True
        self.start_cooldown(trust, now)
        logger.info(
            f"False report recorded for reporter {user_id}: trust {trust.trust_score}, "
            f"flagged={trust.is_flagged}"
        )
        return trust

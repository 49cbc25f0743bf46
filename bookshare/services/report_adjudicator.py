import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import func, or_
from sqlmodel import Session, select

from bookshare.config import settings
from bookshare.errors import (
    ConflictError,
    CooldownError,
    DuplicateError,
    InvalidStateError,
    NotFoundError,
    RateLimitError,
    SelfReportError,
    ValidationError,
)
from bookshare.models.chat import Chat, ChatMessage
from bookshare.models.notifications import NotificationCategory
from bookshare.models.report import (
    AppealOutcome,
    AppealStatus,
    ChatReport,
    ReportReason,
    ReportSignal,
    ReportStatus,
)
from bookshare.notifications import Dispatcher, TrustEvent
from bookshare.services.audit_service import log_report_event
from bookshare.services.confidence import calculate_confidence, should_auto_resolve
from bookshare.services.credit_ledger import CreditLedger, SessionCreditLedger
from bookshare.services.penalty_service import PenaltyApplier
from bookshare.services.signal_collector import ReportContext, SignalCollector
from bookshare.services.trust_score_service import TrustScoreStore

logger = logging.getLogger(__name__)

MAX_DESCRIPTION_LENGTH = 1000
MIN_APPEAL_LENGTH = 20
MAX_APPEAL_LENGTH = 2000

AUTO_RESOLUTION_REASON = "Automatically resolved based on confidence score and signals"


@dataclass
class ReportOutcome:
    report_id: int
    auto_resolved: bool
    confidence: float
    signal_count: int
    penalty_applied: int


class ReportAdjudicator:
    """
    Orchestrates report submission: rate limiting, duplicate detection,
    signal collection, scoring, auto-penalty and trust feedback.

    Every public operation is one database transaction; notifications queued
    on the dispatcher are delivered only after it commits.
    """

    def __init__(
        self,
        session: Session,
        dispatcher: Dispatcher,
        ledger: Optional[CreditLedger] = None,
        now: Optional[datetime] = None,
    ):
        self.session = session
        self.dispatcher = dispatcher
        self.ledger = ledger or SessionCreditLedger(session)
        self.trust_store = TrustScoreStore(session)
        self._now = now

    @property
    def now(self) -> datetime:
        return self._now or datetime.utcnow()

    # ------------------------------------------------------------------
    # submit
    # ------------------------------------------------------------------

    def submit(
        self,
        reporter_id: int,
        reported_id: int,
        chat_id: int,
        reason: str,
        message_id: Optional[int] = None,
        description: Optional[str] = None,
    ) -> ReportOutcome:
        self._validate_submission(reporter_id, reported_id, chat_id, reason, message_id, description)

        if reporter_id == reported_id:
            raise SelfReportError("Cannot report yourself")

        try:
            outcome = self._submit(reporter_id, reported_id, chat_id, reason, message_id, description)
        except Exception:
            self.session.rollback()
            self.dispatcher.discard()
            raise

        self.dispatcher.flush()
        return outcome

    def _submit(self, reporter_id, reported_id, chat_id, reason, message_id, description):
        now = self.now

        chat = self.session.get(Chat, chat_id)
        if not chat:
            raise NotFoundError("Chat not found")

        message_text = None
        if message_id is not None:
            message = self.session.get(ChatMessage, message_id)
            if not message or message.chat_id != chat_id:
                raise NotFoundError("Message not found in this chat")
            message_text = message.message

        # locks the reporter's row until commit
        trust = self.trust_store.get_or_create(reporter_id, lock=True)

        if self.trust_store.is_in_cooldown(trust, now):
            raise CooldownError("You are in cooldown period", cooldown_until=trust.cooldown_until)

        if self._reports_in_last_day(reporter_id, now) >= settings.max_reports_per_day:
            self.trust_store.start_cooldown(trust, now)
            self.session.commit()
            raise RateLimitError(
                f"Maximum {settings.max_reports_per_day} reports per day exceeded"
            )

        duplicate_id = self._find_duplicate(reporter_id, reported_id, chat_id, message_id, reason, now)
        if duplicate_id:
            raise DuplicateError("You have already reported this", duplicate_report_id=duplicate_id)

        signals = SignalCollector(self.session, now).collect(ReportContext(
            reporter_id=reporter_id,
            reported_id=reported_id,
            chat_id=chat_id,
            message_text=message_text,
        ))

        confidence = calculate_confidence(
            signals,
            trust.trust_score,
            trust_score_weight=settings.trust_score_weight,
            signal_combine_weight=settings.signal_combine_weight,
            trust_combine_weight=settings.trust_combine_weight,
        )
        auto_resolve = should_auto_resolve(
            confidence,
            len(signals),
            threshold=settings.confidence_threshold,
            min_signals=settings.min_signal_count,
        )

        report = ChatReport(
            chat_id=chat_id,
            reporter_id=reporter_id,
            reported_id=reported_id,
            message_id=message_id,
            reason=reason,
            description=description,
            confidence_score=confidence,
            signal_count=len(signals),
            auto_resolved=auto_resolve,
            status=ReportStatus.CHECKED if auto_resolve else ReportStatus.PENDING,
            created=now,
        )
        self.session.add(report)
        self.session.flush()

        for signal in signals:
            self.session.add(ReportSignal(
                report_id=report.id,
                signal_type=signal.type,
                signal_weight=signal.weight,
                signal_data=signal.data,
                created=now,
            ))

        log_report_event(
            self.session,
            report_id=report.id,
            action="created",
            actor_type="user",
            actor_id=reporter_id,
            new_status=ReportStatus.PENDING,
            details={"confidence": confidence, "signal_count": len(signals)},
        )

        penalty = 0
        if auto_resolve:
            penalty = PenaltyApplier(self.ledger, self.dispatcher).apply(reported_id, reason, report.id)
            report.resolution_reason = AUTO_RESOLUTION_REASON
            report.penalty_applied = penalty
            self.session.add(report)

            log_report_event(
                self.session,
                report_id=report.id,
                action="resolved",
                actor_type="system",
                old_status=ReportStatus.PENDING,
                new_status=ReportStatus.CHECKED,
                details={"penalty": penalty, "reason": reason},
            )

            self.trust_store.record_valid_report(trust, now)

            self.dispatcher.queue(
                TrustEvent.REPORT_VIOLATION,
                user_id=reported_id,
                title="Community Guidelines Violation",
                body=(
                    f"Your account has been flagged for {reason}. {penalty} credits have "
                    f"been deducted. You may appeal this decision."
                ),
                category=NotificationCategory.report,
                related_id=report.id,
            )
        else:
            self.trust_store.record_pending_report(trust, now)

        self.session.commit()

        logger.info(
            f"Report {report.id} by {reporter_id} against {reported_id}: "
            f"confidence={confidence:.2f} signals={len(signals)} auto_resolved={auto_resolve}"
        )

        return ReportOutcome(
            report_id=report.id,
            auto_resolved=auto_resolve,
            confidence=confidence,
            signal_count=len(signals),
            penalty_applied=penalty,
        )

    def _validate_submission(self, reporter_id, reported_id, chat_id, reason, message_id, description):
        details = []
        for field, value in (
            ("chat_id", chat_id),
            ("reported_user_id", reported_id),
            ("reporter_id", reporter_id),
        ):
            if not isinstance(value, int) or value < 1:
                details.append({"field": field, "message": f"{field} must be a positive integer"})
        if message_id is not None and (not isinstance(message_id, int) or message_id < 1):
            details.append({"field": "message_id", "message": "message_id must be a positive integer"})
        if reason not in {r.value for r in ReportReason}:
            details.append({"field": "reason", "message": "Invalid reason"})
        if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
            details.append({
                "field": "description",
                "message": f"description must be at most {MAX_DESCRIPTION_LENGTH} characters",
            })
        if details:
            raise ValidationError("Validation failed", details=details)

    def _reports_in_last_day(self, reporter_id: int, now: datetime) -> int:
        return self.session.exec(
            select(func.count(ChatReport.id))
            .where(ChatReport.reporter_id == reporter_id)
            .where(ChatReport.created >= now - timedelta(days=1))
        ).one()

    def _find_duplicate(self, reporter_id, reported_id, chat_id, message_id, reason, now) -> Optional[int]:
        # a report filed without a message covers every message of that chat
        if message_id is None:
            message_clause = ChatReport.message_id.is_(None)
        else:
            message_clause = or_(ChatReport.message_id == message_id, ChatReport.message_id.is_(None))

        return self.session.exec(
            select(ChatReport.id)
            .where(ChatReport.reporter_id == reporter_id)
            .where(ChatReport.reported_id == reported_id)
            .where(ChatReport.chat_id == chat_id)
            .where(message_clause)
            .where(ChatReport.reason == reason)
            .where(ChatReport.created >= now - timedelta(hours=settings.duplicate_window_hours))
            .where(ChatReport.status != ReportStatus.CLOSED)
            .limit(1)
        ).first()

    # ------------------------------------------------------------------
    # appeals
    # ------------------------------------------------------------------

    def appeal(self, report_id: int, user_id: int, appeal_reason: str) -> ChatReport:
        appeal_reason = (appeal_reason or "").strip()
        if not MIN_APPEAL_LENGTH <= len(appeal_reason) <= MAX_APPEAL_LENGTH:
            raise ValidationError("Validation failed", details=[{
                "field": "appeal_reason",
                "message": f"Appeal reason must be at least {MIN_APPEAL_LENGTH} characters",
            }])

        try:
            report = self.session.exec(
                select(ChatReport)
                .where(ChatReport.id == report_id)
                .where(ChatReport.reported_id == user_id)
                .with_for_update()
            ).first()

            if not report:
                raise NotFoundError("Report not found")

            if report.appeal_status != AppealStatus.NONE:
                raise ConflictError("Appeal already submitted")

            report.appeal_status = AppealStatus.PENDING
            report.appeal_date = self.now
            report.appeal_reason = appeal_reason
            self.session.add(report)

            log_report_event(
                self.session,
                report_id=report.id,
                action="appealed",
                actor_type="user",
                actor_id=user_id,
                details={"reason": appeal_reason},
            )

            self.session.commit()
            self.session.refresh(report)
        except Exception:
            self.session.rollback()
            raise

        logger.info(f"Appeal submitted for report {report_id} by user {user_id}")
        return report

    def resolve_appeal(
        self,
        report_id: int,
        reviewer_id: int,
        upheld: bool,
        note: Optional[str] = None,
    ) -> ChatReport:
        """
        Staff decision on a pending appeal.

        Upholding closes the report, credits the penalty back and counts the
        report against its reporter's trust score.
        """
        try:
            report = self.session.exec(
                select(ChatReport).where(ChatReport.id == report_id).with_for_update()
            ).first()

            if not report:
                raise NotFoundError("Report not found")

            if report.appeal_status != AppealStatus.PENDING:
                raise InvalidStateError(
                    f"Cannot resolve appeal with status: {report.appeal_status}"
                )

            old_status = report.status
            if upheld:
                report.status = ReportStatus.CLOSED
                report.appeal_outcome = AppealOutcome.UPHELD
                if report.penalty_applied > 0:
                    self.ledger.credit(
                        report.reported_id,
                        report.penalty_applied,
                        reason="Penalty reversed on appeal",
                        report_id=report.id,
                        remark=f"Report ID: {report.id}",
                    )
                self.trust_store.record_false_report(report.reporter_id, self.now)
            else:
                report.appeal_outcome = AppealOutcome.DENIED

            report.appeal_status = AppealStatus.RESOLVED
            self.session.add(report)

            log_report_event(
                self.session,
                report_id=report.id,
                action="appeal_resolved",
                actor_type="admin",
                actor_id=reviewer_id,
                old_status=old_status,
                new_status=report.status,
                details={"outcome": report.appeal_outcome, "note": note},
            )

            if upheld:
                body = "Your appeal was accepted. The report has been closed"
                if report.penalty_applied > 0:
                    body += f" and {report.penalty_applied} credits were returned"
                body += "."
            else:
                body = "Your appeal was reviewed and the original decision stands."
            self.dispatcher.queue(
                TrustEvent.APPEAL_RESOLVED,
                user_id=report.reported_id,
                title="Appeal Decision",
                body=body,
                category=NotificationCategory.report,
                related_id=report.id,
            )
            self.dispatcher.queue(
                TrustEvent.APPEAL_RESOLVED,
                user_id=report.reporter_id,
                title="Report Reviewed",
                body=(
                    "A report you filed was overturned on appeal."
                    if upheld
                    else "A report you filed was upheld after an appeal."
                ),
                category=NotificationCategory.report,
                related_id=report.id,
            )

            self.session.commit()
            self.session.refresh(report)
        except Exception:
            self.session.rollback()
            self.dispatcher.discard()
            raise

        self.dispatcher.flush()
        logger.info(f"Appeal on report {report_id} resolved by {reviewer_id}: upheld={upheld}")
        return report


def get_trust_summary(session: Session, user_id: int) -> dict:
    trust = TrustScoreStore(session).get(user_id)
    if trust is None:
        return {
            "trust_score": settings.default_trust_score,
            "total_reports": 0,
            "valid_reports": 0,
            "false_reports": 0,
            "is_flagged": False,
            "cooldown_until": None,
        }
    return {
        "trust_score": trust.trust_score,
        "total_reports": trust.total_reports,
        "valid_reports": trust.valid_reports,
        "false_reports": trust.false_reports,
        "is_flagged": trust.is_flagged,
        "cooldown_until": trust.cooldown_until,
    }

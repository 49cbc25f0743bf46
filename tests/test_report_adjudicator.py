from datetime import timedelta

import pytest
from sqlmodel import select

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
from bookshare.models.credit_history import CreditHistory
from bookshare.models.report import (
    AppealOutcome,
    AppealStatus,
    ChatReport,
    ReportAuditLog,
    ReporterTrustScore,
    ReportSignal,
    ReportStatus,
)
from bookshare.models.user import User
from bookshare.services.report_adjudicator import ReportAdjudicator, get_trust_summary
from bookshare.services.trust_score_service import TrustScoreStore

APPEAL_TEXT = "I never said that, the message was quoted out of context."


@pytest.fixture
def adjudicator(session, dispatcher, now):
    return ReportAdjudicator(session, dispatcher, now=now)


@pytest.fixture
def deal(make_deal):
    return make_deal()


def audit_actions(session, report_id):
    entries = session.exec(
        select(ReportAuditLog).where(ReportAuditLog.report_id == report_id).order_by(ReportAuditLog.id)
    ).all()
    return [e.action for e in entries]


class TestSubmit:

    def test_report_without_evidence_stays_pending(self, session, adjudicator, deal):
        reporter, reported = deal["borrower"], deal["lender"]

        outcome = adjudicator.submit(reporter.id, reported.id, deal["chat"].id, "spam")

        assert outcome.auto_resolved is False
        assert outcome.confidence == 0.0
        assert outcome.signal_count == 0
        assert outcome.penalty_applied == 0

        report = session.get(ChatReport, outcome.report_id)
        assert report.status == ReportStatus.PENDING
        assert report.appeal_status == AppealStatus.NONE
        assert audit_actions(session, report.id) == ["created"]

        trust = session.get(ReporterTrustScore, reporter.id)
        assert trust.trust_score == 50.0
        assert trust.total_reports == 1
        assert trust.valid_reports == 0

    def test_self_report(self, adjudicator, deal):
        user = deal["borrower"]

        with pytest.raises(SelfReportError):
            adjudicator.submit(user.id, user.id, deal["chat"].id, "spam")

    def test_invalid_reason(self, adjudicator, deal):
        with pytest.raises(ValidationError) as exc:
            adjudicator.submit(deal["borrower"].id, deal["lender"].id, deal["chat"].id, "rude")

        assert exc.value.details[0]["field"] == "reason"

    def test_unknown_chat(self, adjudicator, deal):
        with pytest.raises(NotFoundError):
            adjudicator.submit(deal["borrower"].id, deal["lender"].id, 9999, "spam")

    def test_message_from_another_chat(self, adjudicator, deal, make_deal, make_message):
        other = make_deal()
        message = make_message(other["chat"], other["lender"], "hello")

        with pytest.raises(NotFoundError):
            adjudicator.submit(
                deal["borrower"].id, deal["lender"].id, deal["chat"].id, "spam", message_id=message.id
            )

    def test_duplicate_report(self, adjudicator, deal):
        args = (deal["borrower"].id, deal["lender"].id, deal["chat"].id, "spam")
        first = adjudicator.submit(*args)

        with pytest.raises(DuplicateError) as exc:
            adjudicator.submit(*args)

        assert exc.value.duplicate_report_id == first.report_id
        assert exc.value.to_body()["duplicate_report_id"] == first.report_id

    def test_chat_wide_report_covers_messages(self, adjudicator, deal, make_message):
        message = make_message(deal["chat"], deal["lender"], "hello")
        first = adjudicator.submit(deal["borrower"].id, deal["lender"].id, deal["chat"].id, "abuse")

        with pytest.raises(DuplicateError) as exc:
            adjudicator.submit(
                deal["borrower"].id, deal["lender"].id, deal["chat"].id, "abuse", message_id=message.id
            )

        assert exc.value.duplicate_report_id == first.report_id

    def test_different_reason_is_not_a_duplicate(self, adjudicator, deal):
        adjudicator.submit(deal["borrower"].id, deal["lender"].id, deal["chat"].id, "spam")
        outcome = adjudicator.submit(deal["borrower"].id, deal["lender"].id, deal["chat"].id, "abuse")

        assert outcome.report_id

    def test_closed_report_does_not_block(self, session, adjudicator, deal):
        first = adjudicator.submit(deal["borrower"].id, deal["lender"].id, deal["chat"].id, "spam")
        report = session.get(ChatReport, first.report_id)
        report.status = ReportStatus.CLOSED
        session.add(report)
        session.commit()

        second = adjudicator.submit(deal["borrower"].id, deal["lender"].id, deal["chat"].id, "spam")

        assert second.report_id != first.report_id

    def test_daily_limit_starts_cooldown(self, session, adjudicator, deal, make_user, now):
        reporter = deal["borrower"]
        for _ in range(10):
            session.add(ChatReport(
                chat_id=deal["chat"].id,
                reporter_id=reporter.id,
                reported_id=make_user().id,
                reason="spam",
                created=now - timedelta(hours=2),
            ))
        session.commit()

        with pytest.raises(RateLimitError):
            adjudicator.submit(reporter.id, deal["lender"].id, deal["chat"].id, "spam")

        trust = session.get(ReporterTrustScore, reporter.id)
        assert trust.cooldown_until == now + timedelta(minutes=15)

        with pytest.raises(CooldownError) as exc:
            adjudicator.submit(reporter.id, deal["lender"].id, deal["chat"].id, "abuse")

        assert exc.value.cooldown_until == now + timedelta(minutes=15)

    def test_reports_older_than_a_day_do_not_count(self, session, adjudicator, deal, make_user, now):
        reporter = deal["borrower"]
        for _ in range(10):
            session.add(ChatReport(
                chat_id=deal["chat"].id,
                reporter_id=reporter.id,
                reported_id=make_user().id,
                reason="spam",
                created=now - timedelta(days=2),
            ))
        session.commit()

        outcome = adjudicator.submit(reporter.id, deal["lender"].id, deal["chat"].id, "spam")

        assert outcome.report_id

    def test_three_reporters_build_a_cluster(self, session, adjudicator, deal, make_user):
        reported = deal["lender"]
        chat_id = deal["chat"].id

        adjudicator.submit(make_user().id, reported.id, chat_id, "abuse")
        adjudicator.submit(make_user().id, reported.id, chat_id, "abuse")
        third = adjudicator.submit(make_user().id, reported.id, chat_id, "abuse")

        # multiple_reports (35) * 0.7 + trust factor (15) * 0.3
        assert third.confidence == pytest.approx(29.0)
        assert third.signal_count == 1
        assert third.auto_resolved is False
        assert session.get(User, reported.id).credits == 500


class TestAutoResolution:

    @pytest.fixture
    def scam_report(self, session, adjudicator, deal, make_user, make_message):
        reported = deal["lender"]
        chat_id = deal["chat"].id
        adjudicator.submit(make_user().id, reported.id, chat_id, "scam")
        adjudicator.submit(make_user().id, reported.id, chat_id, "scam")

        message = make_message(deal["chat"], reported, "SEND MONEY NOW, THIS IS NO SCAM")
        reporter = make_user()
        outcome = adjudicator.submit(reporter.id, reported.id, chat_id, "scam", message_id=message.id)
        return {"outcome": outcome, "reporter": reporter, "reported": reported}

    def test_violation_is_resolved_and_penalised(self, session, scam_report):
        outcome = scam_report["outcome"]

        # (40 + 25 + 35) * 0.7 + 15 * 0.3
        assert outcome.confidence == pytest.approx(74.5)
        assert outcome.signal_count == 3
        assert outcome.auto_resolved is True
        assert outcome.penalty_applied == 200

        report = session.get(ChatReport, outcome.report_id)
        assert report.status == ReportStatus.CHECKED
        assert report.penalty_applied == 200
        assert report.resolution_reason
        assert audit_actions(session, report.id) == ["created", "resolved"]

        stored_signals = session.exec(
            select(ReportSignal.signal_type).where(ReportSignal.report_id == report.id)
        ).all()
        assert sorted(stored_signals) == ["keyword_match", "multiple_reports", "pattern_match"]

    def test_credits_deducted_with_history(self, session, scam_report):
        reported = scam_report["reported"]

        assert session.get(User, reported.id).credits == 300

        entry = session.exec(
            select(CreditHistory).where(CreditHistory.user_id == reported.id)
        ).one()
        assert entry.credit_change == -200
        assert entry.old_balance == 500
        assert entry.new_balance == 300
        assert entry.report_id == scam_report["outcome"].report_id

    def test_reporter_trust_rewarded(self, session, scam_report):
        trust = session.get(ReporterTrustScore, scam_report["reporter"].id)

        assert trust.trust_score == 55.0
        assert trust.valid_reports == 1
        assert trust.total_reports == 1

    def test_reported_user_notified(self, sink, scam_report):
        titles = [n["title"] for n in sink.for_user(scam_report["reported"].id)]

        assert titles == ["Account Penalty", "Community Guidelines Violation"]


class TestAppeals:

    @pytest.fixture
    def pending_report(self, adjudicator, deal):
        outcome = adjudicator.submit(deal["borrower"].id, deal["lender"].id, deal["chat"].id, "spam")
        return outcome.report_id

    def test_appeal_too_short(self, adjudicator, deal, pending_report):
        with pytest.raises(ValidationError):
            adjudicator.appeal(pending_report, deal["lender"].id, "not me")

    def test_appeal_too_long(self, adjudicator, deal, pending_report):
        with pytest.raises(ValidationError):
            adjudicator.appeal(pending_report, deal["lender"].id, "x" * 2001)

    def test_only_reported_user_can_appeal(self, adjudicator, deal, pending_report):
        with pytest.raises(NotFoundError):
            adjudicator.appeal(pending_report, deal["borrower"].id, APPEAL_TEXT)

    def test_appeal_recorded(self, session, adjudicator, deal, pending_report, now):
        report = adjudicator.appeal(pending_report, deal["lender"].id, APPEAL_TEXT)

        assert report.appeal_status == AppealStatus.PENDING
        assert report.appeal_reason == APPEAL_TEXT
        assert report.appeal_date == now
        assert audit_actions(session, pending_report) == ["created", "appealed"]

    def test_second_appeal_conflicts(self, adjudicator, deal, pending_report):
        adjudicator.appeal(pending_report, deal["lender"].id, APPEAL_TEXT)

        with pytest.raises(ConflictError):
            adjudicator.appeal(pending_report, deal["lender"].id, APPEAL_TEXT)

    def test_resolve_requires_pending_appeal(self, adjudicator, make_user, pending_report):
        with pytest.raises(InvalidStateError):
            adjudicator.resolve_appeal(pending_report, make_user(role="admin").id, upheld=True)

    def test_denied_appeal_keeps_decision(self, session, adjudicator, deal, make_user, pending_report, sink):
        adjudicator.appeal(pending_report, deal["lender"].id, APPEAL_TEXT)

        report = adjudicator.resolve_appeal(pending_report, make_user(role="admin").id, upheld=False)

        assert report.appeal_status == AppealStatus.RESOLVED
        assert report.appeal_outcome == AppealOutcome.DENIED
        assert report.status == ReportStatus.PENDING
        assert session.get(ReporterTrustScore, deal["borrower"].id).false_reports == 0
        assert sink.for_user(deal["lender"].id)[-1]["title"] == "Appeal Decision"
        assert sink.for_user(deal["borrower"].id)[-1]["title"] == "Report Reviewed"

    def test_upheld_appeal_reverses_penalty(self, session, adjudicator, deal, make_user, now):
        report = ChatReport(
            chat_id=deal["chat"].id,
            reporter_id=deal["borrower"].id,
            reported_id=deal["lender"].id,
            reason="abuse",
            auto_resolved=True,
            status=ReportStatus.CHECKED,
            penalty_applied=100,
            created=now - timedelta(days=1),
        )
        session.add(report)
        lender = session.get(User, deal["lender"].id)
        lender.credits = 400
        session.add(lender)
        session.commit()
        session.refresh(report)

        adjudicator.appeal(report.id, deal["lender"].id, APPEAL_TEXT)
        resolved = adjudicator.resolve_appeal(report.id, make_user(role="admin").id, upheld=True, note="quoted")

        assert resolved.status == ReportStatus.CLOSED
        assert resolved.appeal_outcome == AppealOutcome.UPHELD
        assert session.get(User, deal["lender"].id).credits == 500
        assert audit_actions(session, report.id) == ["appealed", "appeal_resolved"]

        trust = session.get(ReporterTrustScore, deal["borrower"].id)
        assert trust.trust_score == 40.0
        assert trust.false_reports == 1
        assert trust.cooldown_until == now + timedelta(minutes=15)

    def test_upheld_appeal_returns_only_what_was_deducted(
        self, session, adjudicator, deal, make_user, make_message, sink
    ):
        reported = session.get(User, deal["lender"].id)
        reported.credits = 30
        session.add(reported)
        session.commit()

        chat_id = deal["chat"].id
        adjudicator.submit(make_user().id, reported.id, chat_id, "scam")
        adjudicator.submit(make_user().id, reported.id, chat_id, "scam")
        message = make_message(deal["chat"], reported, "SEND MONEY NOW, THIS IS NO SCAM")
        outcome = adjudicator.submit(make_user().id, reported.id, chat_id, "scam", message_id=message.id)

        assert outcome.auto_resolved is True
        assert outcome.penalty_applied == 30
        assert session.get(ChatReport, outcome.report_id).penalty_applied == 30
        assert session.get(User, reported.id).credits == 0
        assert "penalized 30 credits" in sink.for_user(reported.id)[0]["body"]

        adjudicator.appeal(outcome.report_id, reported.id, APPEAL_TEXT)
        adjudicator.resolve_appeal(outcome.report_id, make_user(role="admin").id, upheld=True)

        assert session.get(User, reported.id).credits == 30


class TestTrustScores:

    def test_summary_defaults(self, session, make_user):
        summary = get_trust_summary(session, make_user().id)

        assert summary == {
            "trust_score": 50.0,
            "total_reports": 0,
            "valid_reports": 0,
            "false_reports": 0,
            "is_flagged": False,
            "cooldown_until": None,
        }

    def test_false_reports_flag_reporter(self, session, make_user, now):
        user = make_user()
        store = TrustScoreStore(session)
        trust = store.get_or_create(user.id)
        trust.trust_score = 25.0
        session.commit()

        trust = store.record_false_report(user.id, now)
        session.commit()

        assert trust.trust_score == 15.0
        assert trust.is_flagged is True

    def test_trust_never_leaves_range(self, session, make_user, now):
        user = make_user()
        store = TrustScoreStore(session)
        trust = store.get_or_create(user.id)
        trust.trust_score = 98.0

        store.record_valid_report(trust, now)
        assert trust.trust_score == 100.0

        trust.trust_score = 4.0
        session.commit()
        trust = store.record_false_report(user.id, now)
        assert trust.trust_score == 0.0

    def test_row_created_concurrently_is_reloaded(self, session, make_user, monkeypatch):
        user = make_user()
        session.add(ReporterTrustScore(user_id=user.id, trust_score=70.0))
        session.commit()
        session.expunge_all()

        store = TrustScoreStore(session)
        # the earlier read missed the row another submission just inserted
        monkeypatch.setattr(store, "get", lambda user_id: None)

        trust = store.get_or_create(user.id, lock=True)

        assert trust.trust_score == 70.0
        assert session.exec(select(ReporterTrustScore)).all() == [trust]

from datetime import timedelta

import pytest

from bookshare.errors import (
    ConflictError,
    ForbiddenError,
    GoneError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from bookshare.models.book import Book
from bookshare.models.cancellation import CancellationRequest, CancellationStatus
from bookshare.models.transaction import Transaction, TransactionStatus
from bookshare.notifications import Dispatcher
from bookshare.services.cancellation_expiry_service import ExpiryProcessor
from bookshare.services.cancellation_service import (
    CancellationNegotiator,
    calculate_refund_amount,
    get_cancellation_history,
    get_latest_cancellation,
)


@pytest.fixture
def negotiator(session, dispatcher, now):
    return CancellationNegotiator(session, dispatcher, now=now)


@pytest.fixture
def deal(make_deal):
    return make_deal(status=TransactionStatus.APPROVED, minimum_credits=120)


@pytest.fixture
def initiated(negotiator, deal):
    result = negotiator.initiate(
        transaction_id=deal["transaction"].id,
        initiator_id=deal["borrower"].id,
        reason="changed_mind",
        description="Found it at the library",
    )
    return result


def negotiator_at(session, dispatcher, moment):
    return CancellationNegotiator(session, dispatcher, now=moment)


class TestRefundAmount:

    def test_full(self):
        assert calculate_refund_amount("full", 120) == 120

    def test_partial_with_explicit_amount(self):
        assert calculate_refund_amount("partial", 120, 30) == 30

    def test_partial_defaults_to_half(self):
        assert calculate_refund_amount("partial", 125) == 62

    def test_partial_custom_ratio(self):
        assert calculate_refund_amount("partial", 100, partial_ratio=0.25) == 25

    def test_none(self):
        assert calculate_refund_amount("none", 120) is None


class TestInitiate:

    def test_creates_pending_request(self, session, deal, initiated, now):
        cancellation = session.get(CancellationRequest, initiated.cancellation_id)

        assert cancellation.status == CancellationStatus.PENDING
        assert cancellation.initiator_id == deal["borrower"].id
        assert cancellation.other_party_id == deal["lender"].id
        assert cancellation.previous_status == TransactionStatus.APPROVED
        assert cancellation.other_confirmed is None
        assert cancellation.refund_amount == 120
        assert initiated.expires_at == now + timedelta(hours=48)

        transaction = session.get(Transaction, deal["transaction"].id)
        assert transaction.status == TransactionStatus.CANCELLATION_PENDING

    def test_history_starts_with_initiated(self, session, deal, initiated):
        history = get_cancellation_history(session, initiated.cancellation_id, deal["lender"].id)

        assert [h.action for h in history] == ["initiated"]
        assert history[0].actor_id == deal["borrower"].id
        assert history[0].details["refund_type"] == "full"

    def test_other_party_notified_in_chat(self, deal, initiated, sink, transport):
        assert [n["title"] for n in sink.for_user(deal["lender"].id)] == ["Cancellation Request"]

        posted = transport.posted[0]
        assert posted["chat_id"] == deal["chat"].id
        assert posted["sender_id"] == deal["borrower"].id
        assert posted["payload"]["type"] == "cancellation_request"
        assert posted["payload"]["cancellation_id"] == initiated.cancellation_id
        assert posted["payload"]["book_title"] == "Dune"
        assert transport.broadcasts[0][0] == deal["chat"].id

    def test_partial_refund_defaults_to_half(self, negotiator, deal):
        result = negotiator.initiate(
            deal["transaction"].id, deal["lender"].id, "arrangement_issue", refund_type="partial"
        )

        assert result.refund_amount == 60

    def test_no_refund(self, negotiator, deal):
        result = negotiator.initiate(
            deal["transaction"].id, deal["lender"].id, "other", refund_type="none"
        )

        assert result.refund_amount is None

    def test_partial_refund_above_book_price(self, negotiator, deal):
        with pytest.raises(ValidationError):
            negotiator.initiate(
                deal["transaction"].id, deal["borrower"].id, "other",
                refund_type="partial", refund_amount=500,
            )

    def test_invalid_reason(self, negotiator, deal):
        with pytest.raises(ValidationError) as exc:
            negotiator.initiate(deal["transaction"].id, deal["borrower"].id, "bored")

        assert exc.value.details[0]["field"] == "reason"

    def test_unknown_transaction(self, negotiator, deal):
        with pytest.raises(NotFoundError):
            negotiator.initiate(9999, deal["borrower"].id, "other")

    def test_outsider_forbidden(self, negotiator, deal, make_user):
        with pytest.raises(ForbiddenError):
            negotiator.initiate(deal["transaction"].id, make_user().id, "other")

    def test_active_request_conflicts(self, negotiator, deal, initiated):
        with pytest.raises(ConflictError) as exc:
            negotiator.initiate(deal["transaction"].id, deal["lender"].id, "other")

        assert exc.value.extra["cancellation_id"] == initiated.cancellation_id

    def test_borrowed_transaction_cannot_be_cancelled(self, negotiator, make_deal):
        deal = make_deal(status=TransactionStatus.BORROWED)

        with pytest.raises(InvalidStateError):
            negotiator.initiate(deal["transaction"].id, deal["borrower"].id, "other")

    def test_failed_initiate_sends_nothing(self, negotiator, make_deal, sink, transport):
        deal = make_deal(status=TransactionStatus.RETURNED)

        with pytest.raises(InvalidStateError):
            negotiator.initiate(deal["transaction"].id, deal["borrower"].id, "other")

        assert sink.notifications == []
        assert transport.posted == []


class TestRespond:

    def test_consent_cancels_transaction(self, session, negotiator, deal, initiated, now):
        cancellation = negotiator.respond(initiated.cancellation_id, deal["lender"].id, consent=True)

        assert cancellation.status == CancellationStatus.PROCESSED
        assert cancellation.other_confirmed is True
        assert cancellation.other_response_date == now
        assert cancellation.completed_at == now

        assert session.get(Transaction, deal["transaction"].id).status == TransactionStatus.CANCELLED
        assert session.get(Book, deal["book"].id).is_available is True

    def test_consent_history(self, session, negotiator, deal, initiated):
        negotiator.respond(initiated.cancellation_id, deal["lender"].id, consent=True)

        history = get_cancellation_history(session, initiated.cancellation_id, deal["borrower"].id)

        assert [h.action for h in history] == ["initiated", "consented", "system"]
        assert history[2].actor_id is None
        assert history[2].details == {"event": "completed", "refund_amount": 120}

    def test_consent_notifies_initiator(self, negotiator, deal, initiated, sink, transport):
        negotiator.respond(initiated.cancellation_id, deal["lender"].id, consent=True)

        assert [n["title"] for n in sink.for_user(deal["borrower"].id)] == ["Cancellation Approved"]
        assert transport.payload_types() == ["cancellation_request", "cancellation_response"]
        assert transport.posted[1]["payload"]["status"] == "approved"

    def test_reject_restores_transaction(self, session, negotiator, deal, initiated, transport):
        cancellation = negotiator.respond(initiated.cancellation_id, deal["lender"].id, consent=False)

        assert cancellation.status == CancellationStatus.REJECTED
        assert cancellation.other_confirmed is False
        assert session.get(Transaction, deal["transaction"].id).status == TransactionStatus.APPROVED
        assert transport.posted[1]["payload"]["status"] == "rejected"

    def test_restores_ongoing_status(self, session, negotiator, make_deal):
        deal = make_deal(status=TransactionStatus.ONGOING)
        result = negotiator.initiate(deal["transaction"].id, deal["lender"].id, "personal_reason")

        negotiator.respond(result.cancellation_id, deal["borrower"].id, consent=False)

        assert session.get(Transaction, deal["transaction"].id).status == TransactionStatus.ONGOING

    def test_new_request_after_rejection(self, negotiator, deal, initiated):
        negotiator.respond(initiated.cancellation_id, deal["lender"].id, consent=False)

        again = negotiator.initiate(deal["transaction"].id, deal["borrower"].id, "other")

        assert again.cancellation_id != initiated.cancellation_id

    def test_initiator_cannot_respond(self, negotiator, deal, initiated):
        with pytest.raises(ForbiddenError):
            negotiator.respond(initiated.cancellation_id, deal["borrower"].id, consent=True)

    def test_unknown_request(self, negotiator, deal):
        with pytest.raises(NotFoundError):
            negotiator.respond(9999, deal["lender"].id, consent=True)

    def test_second_response_conflicts(self, negotiator, deal, initiated):
        negotiator.respond(initiated.cancellation_id, deal["lender"].id, consent=False)

        with pytest.raises(ConflictError):
            negotiator.respond(initiated.cancellation_id, deal["lender"].id, consent=True)

    def test_late_response_expires_request(self, session, dispatcher, deal, initiated, now, sink):
        late = negotiator_at(session, dispatcher, now + timedelta(hours=49))

        with pytest.raises(GoneError):
            late.respond(initiated.cancellation_id, deal["lender"].id, consent=True)

        cancellation = session.get(CancellationRequest, initiated.cancellation_id)
        assert cancellation.status == CancellationStatus.EXPIRED
        assert cancellation.other_confirmed is None
        assert session.get(Transaction, deal["transaction"].id).status == TransactionStatus.APPROVED
        assert [n["title"] for n in sink.for_user(deal["borrower"].id)] == ["Cancellation Expired"]

        history = get_cancellation_history(session, initiated.cancellation_id, deal["lender"].id)
        assert history[-1].details == {"event": "expired"}

    def test_response_after_expiry_is_invalid(self, session, dispatcher, deal, initiated, now):
        late = negotiator_at(session, dispatcher, now + timedelta(hours=49))
        with pytest.raises(GoneError):
            late.respond(initiated.cancellation_id, deal["lender"].id, consent=True)

        with pytest.raises(InvalidStateError):
            late.respond(initiated.cancellation_id, deal["lender"].id, consent=True)


class TestExpirySweep:

    def test_sweep_auto_approves_lapsed_requests(self, session, dispatcher, deal, initiated, now, sink, transport):
        processed = ExpiryProcessor(session, dispatcher).sweep(now + timedelta(hours=49))

        assert processed == 1

        cancellation = session.get(CancellationRequest, initiated.cancellation_id)
        assert cancellation.status == CancellationStatus.PROCESSED
        assert cancellation.other_confirmed is True
        assert session.get(Transaction, deal["transaction"].id).status == TransactionStatus.CANCELLED

        history = get_cancellation_history(session, initiated.cancellation_id, deal["borrower"].id)
        assert [h.action for h in history] == ["initiated", "system", "system"]
        assert history[1].details["event"] == "auto_approved"
        assert history[2].details["event"] == "completed"

        assert sink.for_user(deal["borrower"].id)[-1]["title"] == "Cancellation Auto-Approved"
        assert sink.for_user(deal["lender"].id)[-1]["title"] == "Cancellation Auto-Approved"
        assert transport.payload_types()[-1] == "cancellation_auto_approved"

    def test_sweep_is_idempotent(self, session, dispatcher, initiated, now):
        processor = ExpiryProcessor(session, dispatcher)

        assert processor.sweep(now + timedelta(hours=49)) == 1
        assert processor.sweep(now + timedelta(hours=50)) == 0

    def test_sweep_leaves_open_requests(self, session, dispatcher, initiated, now):
        assert ExpiryProcessor(session, dispatcher).sweep(now + timedelta(hours=47)) == 0

        cancellation = session.get(CancellationRequest, initiated.cancellation_id)
        assert cancellation.status == CancellationStatus.PENDING

    def test_sweep_skips_answered_requests(self, session, dispatcher, negotiator, deal, initiated, now):
        negotiator.respond(initiated.cancellation_id, deal["lender"].id, consent=False)

        assert ExpiryProcessor(session, dispatcher).sweep(now + timedelta(hours=49)) == 0

    def test_response_after_sweep_conflicts(self, session, dispatcher, deal, initiated, now):
        ExpiryProcessor(session, dispatcher).sweep(now + timedelta(hours=49))
        late = negotiator_at(session, dispatcher, now + timedelta(hours=50))

        with pytest.raises(ConflictError):
            late.respond(initiated.cancellation_id, deal["lender"].id, consent=False)


class TestReadViews:

    def test_latest_cancellation(self, session, negotiator, deal, initiated):
        negotiator.respond(initiated.cancellation_id, deal["lender"].id, consent=False)
        second = negotiator.initiate(deal["transaction"].id, deal["lender"].id, "other")

        latest = get_latest_cancellation(session, deal["transaction"].id)

        assert latest.id == second.cancellation_id

    def test_history_requires_party(self, session, deal, initiated, make_user):
        with pytest.raises(ForbiddenError):
            get_cancellation_history(session, initiated.cancellation_id, make_user().id)

    def test_history_unknown_cancellation(self, session, deal):
        with pytest.raises(NotFoundError):
            get_cancellation_history(session, 9999, deal["borrower"].id)


def test_delivery_failure_does_not_undo_cancellation(session, deal, now):
    class BrokenSink:
        def notify(self, *args, **kwargs):
            raise RuntimeError("notification store unavailable")

    class BrokenTransport:
        def post_system_message(self, *args, **kwargs):
            raise RuntimeError("chat unavailable")

        def broadcast(self, *args, **kwargs):
            raise RuntimeError("chat unavailable")

    negotiator = CancellationNegotiator(session, Dispatcher(BrokenSink(), BrokenTransport()), now=now)

    result = negotiator.initiate(deal["transaction"].id, deal["borrower"].id, "other")

    assert session.get(CancellationRequest, result.cancellation_id).status == CancellationStatus.PENDING

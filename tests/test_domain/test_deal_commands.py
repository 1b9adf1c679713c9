"""Tests for the pure deal transition function ``apply``."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from safe_transfer.domain.deal_commands import (
    MAX_MESSAGE_LENGTH,
    AcceptDeal,
    AddMessage,
    AssignDispute,
    CancelDeal,
    ConfirmReceipt,
    DepositPayment,
    MarkDelivered,
    MarkShipped,
    RaiseDispute,
    ResolveDispute,
    ReviewDeal,
    SignContract,
    SyncKyc,
    UploadDealDocument,
    apply,
    contract_hash,
)
from safe_transfer.domain.deal_workflow import (
    DealState,
    DealTerms,
    Workflow,
    progress,
    required_document_types,
)
from safe_transfer.domain.enums import DealStatus, DisputeStatus, PartyRole
from safe_transfer.domain.exceptions import (
    AuthorizationError,
    InvalidStateError,
    ValidationError,
)

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)
BUYER = "buyer-1"
SELLER = "seller-1"
ADMIN = "admin-1"
STRANGER = "someone-else"


def new_deal(category: str = "vehicle") -> DealState:
    workflow = Workflow()
    workflow.deal_created.mark_completed(T0)
    workflow.documents_uploaded.seller_required_docs = required_document_types(category, PartyRole.SELLER)
    workflow.documents_uploaded.buyer_required_docs = required_document_types(category, PartyRole.BUYER)
    return DealState(
        id="00000000-0000-0000-0000-000000000001",
        deal_id="ST000001",
        buyer_id=BUYER,
        seller_id=SELLER,
        initiator_id=BUYER,
        terms=DealTerms(
            title="Honda City 2019 sedan",
            description="Single owner, full service history.",
            category=category,
            amount=Decimal("50000"),
            escrow_fee=Decimal("1250.00"),
            escrow_fee_percentage=Decimal("2.5"),
            delivery_method="in_person",
            inspection_period=3,
        ),
        workflow=workflow,
    )


class Driver:
    """Applies commands in sequence with a ticking clock."""

    def __init__(self, state: DealState) -> None:
        self.state = state
        self.now = T0

    def __call__(self, command) -> DealState:
        self.now += timedelta(minutes=1)
        self.state = apply(self.state, command, self.now)
        return self.state


def drive_to(status: str, category: str = "vehicle") -> Driver:
    d = Driver(new_deal(category))
    plan = [
        (DealStatus.ACCEPTED, [AcceptDeal(BUYER), AcceptDeal(SELLER)]),
        (DealStatus.DOCUMENTS_PENDING, [SyncKyc(buyer_approved=False, seller_approved=True)]),
        (DealStatus.PAYMENT_PENDING, [UploadDealDocument(SELLER, "ownership", "rc.pdf", "/u/rc.pdf")]),
        (DealStatus.CONTRACT_PENDING, [DepositPayment(BUYER, "upi", "TXN1")]),
        (DealStatus.FUNDS_DEPOSITED, [SignContract(BUYER), SignContract(SELLER)]),
        (DealStatus.IN_DELIVERY, [MarkShipped(SELLER)]),
        (DealStatus.DELIVERED, [MarkDelivered(SELLER, "Handed over")]),
    ]
    for target, commands in plan:
        for command in commands:
            d(command)
        assert d.state.status == target
        if target == status:
            break
    return d


class TestAccept:
    def test_one_side_keeps_created(self) -> None:
        d = Driver(new_deal())
        state = d(AcceptDeal(BUYER))
        assert state.status == DealStatus.CREATED
        assert state.workflow.parties_accepted.buyer_accepted is True
        assert state.messages[-1].text == "Buyer has accepted the deal"

    def test_both_sides_accept(self) -> None:
        d = Driver(new_deal())
        d(AcceptDeal(BUYER))
        state = d(AcceptDeal(SELLER))
        assert state.status == DealStatus.ACCEPTED
        assert state.accepted_at == d.now
        assert state.workflow.parties_accepted.completed_at == d.now

    def test_repeated_accept_is_a_no_op(self) -> None:
        d = Driver(new_deal())
        first = d(AcceptDeal(BUYER))
        again = apply(first, AcceptDeal(BUYER), T0 + timedelta(hours=1))
        assert again is first
        assert len(again.messages) == 1

    def test_stranger_cannot_accept(self) -> None:
        with pytest.raises(AuthorizationError):
            apply(new_deal(), AcceptDeal(STRANGER), T0)

    def test_failed_command_leaves_state_untouched(self) -> None:
        state = new_deal()
        before = state.workflow.to_dict()
        with pytest.raises(AuthorizationError):
            apply(state, AcceptDeal(STRANGER), T0)
        assert state.workflow.to_dict() == before
        assert state.messages == []


class TestMessages:
    def test_text_is_trimmed(self) -> None:
        state = apply(new_deal(), AddMessage(SELLER, "  Is the price negotiable?  "), T0)
        assert state.messages[-1].text == "Is the price negotiable?"
        assert state.messages[-1].is_system is False

    def test_limit_is_inclusive(self) -> None:
        apply(new_deal(), AddMessage(BUYER, "x" * MAX_MESSAGE_LENGTH), T0)
        with pytest.raises(ValidationError) as exc_info:
            apply(new_deal(), AddMessage(BUYER, "x" * (MAX_MESSAGE_LENGTH + 1)), T0)
        assert exc_info.value.fields == ["text"]

    def test_blank_text_rejected(self) -> None:
        with pytest.raises(ValidationError):
            apply(new_deal(), AddMessage(BUYER, "   "), T0)

    def test_status_unchanged(self) -> None:
        state = drive_to(DealStatus.ACCEPTED).state
        assert apply(state, AddMessage(BUYER, "hello"), T0).status == DealStatus.ACCEPTED


class TestCancel:
    @pytest.mark.parametrize("status", [DealStatus.CREATED, DealStatus.ACCEPTED, DealStatus.DOCUMENTS_PENDING])
    def test_cancel_before_payment(self, status: str) -> None:
        d = drive_to(status) if status != DealStatus.CREATED else Driver(new_deal())
        state = d(CancelDeal(BUYER, "Asha Rao", "Found a better offer"))
        assert state.status == DealStatus.CANCELLED
        assert state.messages[-1].text == "Deal cancelled by Asha Rao: Found a better offer"
        assert state.messages[-1].is_system is True

    def test_cancel_after_payment_is_invalid_state(self) -> None:
        state = drive_to(DealStatus.CONTRACT_PENDING).state
        with pytest.raises(InvalidStateError):
            apply(state, CancelDeal(BUYER, "Asha Rao"), T0)

    def test_cancelled_deal_stays_cancelled(self) -> None:
        state = apply(new_deal(), CancelDeal(SELLER, "Ravi Kumar"), T0)
        with pytest.raises(InvalidStateError):
            apply(state, CancelDeal(BUYER, "Asha Rao"), T0)


class TestKycGate:
    def test_buyer_only_moves_to_kyc_pending(self) -> None:
        d = drive_to(DealStatus.ACCEPTED)
        state = d(SyncKyc(buyer_approved=True, seller_approved=False))
        assert state.status == DealStatus.KYC_PENDING
        assert state.workflow.kyc_verified.completed is False

    def test_seller_completes_the_step(self) -> None:
        d = drive_to(DealStatus.ACCEPTED)
        state = d(SyncKyc(buyer_approved=False, seller_approved=True))
        assert state.status == DealStatus.DOCUMENTS_PENDING
        assert state.workflow.kyc_verified.completed is True

    def test_flags_are_monotonic(self) -> None:
        d = drive_to(DealStatus.ACCEPTED)
        d(SyncKyc(buyer_approved=True, seller_approved=False))
        state = d(SyncKyc(buyer_approved=False, seller_approved=False))
        assert state.workflow.kyc_verified.buyer_kyc is True

    def test_ignored_before_acceptance(self) -> None:
        state = new_deal()
        assert apply(state, SyncKyc(True, True), T0) is state

    def test_no_document_requirements_skip_straight_to_payment(self) -> None:
        d = drive_to(DealStatus.ACCEPTED)
        d.state.workflow.documents_uploaded.seller_required_docs = []
        state = d(SyncKyc(buyer_approved=False, seller_approved=True))
        assert state.status == DealStatus.PAYMENT_PENDING
        assert state.workflow.documents_uploaded.completed is True


class TestDocuments:
    def test_invalid_type(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            apply(new_deal(), UploadDealDocument(SELLER, "passport", "p.pdf", "/u/p.pdf"), T0)
        assert exc_info.value.fields == ["document_type"]

    def test_upload_recorded_before_kyc(self) -> None:
        state = apply(new_deal(), UploadDealDocument(SELLER, "ownership", "rc.pdf", "/u/rc.pdf"), T0)
        assert state.status == DealStatus.CREATED
        assert state.documents[-1].url == "/u/rc.pdf"
        assert state.workflow.documents_uploaded.seller_uploaded_docs == ["ownership"]

    def test_early_upload_counts_once_kyc_passes(self) -> None:
        d = drive_to(DealStatus.ACCEPTED)
        d(UploadDealDocument(SELLER, "ownership", "rc.pdf", "/u/rc.pdf"))
        state = d(SyncKyc(buyer_approved=False, seller_approved=True))
        assert state.status == DealStatus.PAYMENT_PENDING

    def test_freelancing_waits_for_both_sides(self) -> None:
        d = drive_to(DealStatus.DOCUMENTS_PENDING, category="freelancing")
        state = d(UploadDealDocument(SELLER, "agreement", "portfolio.pdf", "/u/p.pdf"))
        assert state.status == DealStatus.DOCUMENTS_PENDING
        assert state.workflow.documents_uploaded.seller_docs is True
        state = d(UploadDealDocument(BUYER, "agreement", "requirements.pdf", "/u/r.pdf"))
        assert state.status == DealStatus.PAYMENT_PENDING

    def test_terminal_deal_rejects_uploads(self) -> None:
        state = apply(new_deal(), CancelDeal(BUYER, "Asha"), T0)
        with pytest.raises(InvalidStateError):
            apply(state, UploadDealDocument(SELLER, "ownership", "rc.pdf", "/u/rc.pdf"), T0)


class TestPaymentAndContract:
    def test_seller_cannot_deposit(self) -> None:
        state = drive_to(DealStatus.PAYMENT_PENDING).state
        with pytest.raises(AuthorizationError):
            apply(state, DepositPayment(SELLER, "upi", "TXN1"), T0)

    def test_deposit_in_wrong_status(self) -> None:
        state = drive_to(DealStatus.ACCEPTED).state
        with pytest.raises(InvalidStateError):
            apply(state, DepositPayment(BUYER, "upi", "TXN1"), T0)

    def test_deposit_records_transaction(self) -> None:
        state = drive_to(DealStatus.CONTRACT_PENDING).state
        assert state.workflow.payment_deposited.transaction_id == "TXN1"
        assert state.workflow.payment_deposited.payment_method == "upi"

    def test_contract_needs_both_signatures(self) -> None:
        d = drive_to(DealStatus.CONTRACT_PENDING)
        state = d(SignContract(SELLER))
        assert state.status == DealStatus.CONTRACT_PENDING
        assert state.workflow.contract_signed.contract_hash is None
        assert apply(state, SignContract(SELLER), T0) is state
        state = d(SignContract(BUYER))
        assert state.status == DealStatus.FUNDS_DEPOSITED
        assert state.workflow.contract_signed.contract_hash == contract_hash(state)
        assert len(state.workflow.contract_signed.contract_hash) == 64


class TestDelivery:
    def test_buyer_cannot_ship(self) -> None:
        state = drive_to(DealStatus.FUNDS_DEPOSITED).state
        with pytest.raises(AuthorizationError):
            apply(state, MarkShipped(BUYER), T0)

    def test_delivered_without_shipping(self) -> None:
        d = drive_to(DealStatus.FUNDS_DEPOSITED)
        state = d(MarkDelivered(SELLER))
        assert state.status == DealStatus.DELIVERED

    def test_confirm_receipt_completes(self) -> None:
        d = drive_to(DealStatus.DELIVERED)
        state = d(ConfirmReceipt(BUYER, "TXN2", rating=5, feedback="Great"))
        assert state.status == DealStatus.COMPLETED
        assert state.completed_at == d.now
        assert progress(state.workflow) == 100
        assert state.workflow.funds_released.rating == 5

    def test_rating_out_of_range(self) -> None:
        state = drive_to(DealStatus.DELIVERED).state
        with pytest.raises(ValidationError):
            apply(state, ConfirmReceipt(BUYER, "TXN2", rating=6), T0)

    def test_progress_never_decreases(self) -> None:
        d = Driver(new_deal())
        seen = [progress(d.state.workflow)]
        for command in [
            AcceptDeal(BUYER),
            AcceptDeal(SELLER),
            SyncKyc(False, True),
            UploadDealDocument(SELLER, "ownership", "rc.pdf", "/u/rc.pdf"),
            DepositPayment(BUYER, "upi", "TXN1"),
            SignContract(BUYER),
            SignContract(SELLER),
            MarkShipped(SELLER),
            MarkDelivered(SELLER),
            ConfirmReceipt(BUYER, "TXN2"),
        ]:
            seen.append(progress(d(command).workflow))
        assert seen == sorted(seen)
        assert seen[-1] == 100


class TestDisputes:
    def test_raise_and_refund(self) -> None:
        d = drive_to(DealStatus.IN_DELIVERY)
        state = d(RaiseDispute(BUYER, "Item not as described"))
        assert state.status == DealStatus.DISPUTED
        assert state.dispute.status == DisputeStatus.OPEN

        state = d(AssignDispute(ADMIN))
        assert state.dispute.status == DisputeStatus.INVESTIGATING
        assert state.dispute.assigned_to == ADMIN

        state = d(ResolveDispute(ADMIN, "refund", "Seller misrepresented", "RFD1"))
        assert state.status == DealStatus.REFUNDED
        assert state.dispute.status == DisputeStatus.RESOLVED

    def test_release_completes_the_workflow(self) -> None:
        d = drive_to(DealStatus.FUNDS_DEPOSITED)
        d(RaiseDispute(SELLER, "Buyer unreachable"))
        state = d(ResolveDispute(ADMIN, "release", "Delivery proven", "REL1"))
        assert state.status == DealStatus.COMPLETED
        assert state.closure is None
        assert progress(state.workflow) == 100

    def test_reason_required(self) -> None:
        state = drive_to(DealStatus.DELIVERED).state
        with pytest.raises(ValidationError):
            apply(state, RaiseDispute(BUYER, "  "), T0)

    def test_dispute_before_funding_is_invalid_state(self) -> None:
        state = drive_to(DealStatus.PAYMENT_PENDING).state
        with pytest.raises(InvalidStateError):
            apply(state, RaiseDispute(BUYER, "Changed my mind"), T0)

    def test_resolve_requires_dispute(self) -> None:
        state = drive_to(DealStatus.DELIVERED).state
        with pytest.raises(InvalidStateError):
            apply(state, ResolveDispute(ADMIN, "refund"), T0)

    def test_unknown_outcome(self) -> None:
        d = drive_to(DealStatus.DELIVERED)
        d(RaiseDispute(BUYER, "Damaged"))
        with pytest.raises(ValidationError):
            apply(d.state, ResolveDispute(ADMIN, "split"), T0)


class TestReview:
    def test_flag_then_approve(self) -> None:
        state = apply(new_deal(), ReviewDeal(ADMIN, "flag", "Price far above market", 80, ["price"]), T0)
        assert state.flag.flagged is True
        assert state.flag.flag_reason == "Price far above market"
        assert state.flag.risk_score == 80
        assert state.status == DealStatus.CREATED

        state = apply(state, ReviewDeal(ADMIN, "approve"), T0)
        assert state.flag.flagged is False
        assert state.flag.risk_score == 80
        assert state.flag.risk_factors == ["price"]

    def test_investigate_reason(self) -> None:
        state = apply(new_deal(), ReviewDeal(ADMIN, "investigate"), T0)
        assert state.flag.flag_reason == "Under investigation"

    def test_risk_score_bounds(self) -> None:
        with pytest.raises(ValidationError):
            apply(new_deal(), ReviewDeal(ADMIN, "flag", risk_score=101), T0)

    def test_unknown_action(self) -> None:
        with pytest.raises(ValidationError):
            apply(new_deal(), ReviewDeal(ADMIN, "delete"), T0)

"""Tests for DealService against an in-memory database."""

from __future__ import annotations

from decimal import Decimal

import pytest

from safe_transfer.domain.enums import DealStatus
from safe_transfer.domain.exceptions import (
    AuthorizationError,
    DealNotFoundError,
    InvalidStateError,
    ValidationError,
)


class TestCreateDeal:
    @pytest.mark.asyncio
    async def test_first_deal_number(self, services, buyer, seller, make_draft) -> None:
        view = await services.deals.create_deal(buyer.id, make_draft())
        deal = view.deal
        assert deal.deal_id == "ST000001"
        assert view.status == DealStatus.CREATED
        assert (deal.buyer_id, deal.seller_id, deal.initiator_id) == (buyer.id, seller.id, buyer.id)
        assert deal.terms.escrow_fee == Decimal("1250.00")
        assert deal.terms.escrow_fee_percentage == Decimal("2.5")
        assert deal.workflow.deal_created.completed is True
        assert deal.workflow.documents_uploaded.seller_required_docs == ["ownership"]
        assert view.progress == 13

    @pytest.mark.asyncio
    async def test_numbers_are_sequential(self, services, buyer, seller, make_draft) -> None:
        first = await services.deals.create_deal(buyer.id, make_draft())
        second = await services.deals.create_deal(buyer.id, make_draft(title="Second-hand scooter"))
        assert (first.deal.deal_id, second.deal.deal_id) == ("ST000001", "ST000002")

    @pytest.mark.asyncio
    async def test_invites_registered_counterparty(self, services, buyer, seller, make_draft) -> None:
        await services.deals.create_deal(buyer.id, make_draft())
        assert services.notifier.messages_for(seller.id) == [
            "New escrow deal invitation from Asha Rao for ₹50,000. Deal ID: ST000001. "
            "Login to Safe Transfer app to view details."
        ]

    @pytest.mark.asyncio
    async def test_provisions_unknown_counterparty(self, services, buyer, make_draft) -> None:
        view = await services.deals.create_deal(
            buyer.id, make_draft(counterparty_phone="9988776655", counterparty_name="Meera Iyer")
        )
        placeholder = await services.parties.get(view.deal.seller_id)
        assert placeholder.phone == "9988776655"
        assert (placeholder.first_name, placeholder.last_name) == ("Meera", "Iyer")
        assert placeholder.phone_verified is False
        assert placeholder.is_claimed is False
        assert "create your account" in services.notifier.messages_for(placeholder.id)[0]

    @pytest.mark.asyncio
    async def test_seller_initiated(self, services, buyer, seller, make_draft) -> None:
        view = await services.deals.create_deal(seller.id, make_draft(role="seller", counterparty_phone=buyer.phone))
        assert view.deal.buyer_id == buyer.id
        assert view.deal.initiator_id == seller.id

    @pytest.mark.asyncio
    async def test_collects_field_errors(self, services, buyer, make_draft) -> None:
        draft = make_draft(title="Car", amount=Decimal("500"), category="boat", counterparty_phone="12345")
        with pytest.raises(ValidationError) as exc_info:
            await services.deals.create_deal(buyer.id, draft)
        assert set(exc_info.value.fields) == {"title", "amount", "category", "seller_phone"}

    @pytest.mark.asyncio
    async def test_missing_counterparty_phone_for_seller_initiator(self, services, seller, make_draft) -> None:
        with pytest.raises(ValidationError) as exc_info:
            await services.deals.create_deal(seller.id, make_draft(role="seller", counterparty_phone=None))
        assert exc_info.value.fields == ["buyer_phone"]

    @pytest.mark.asyncio
    async def test_cannot_deal_with_yourself(self, services, buyer, make_draft) -> None:
        with pytest.raises(ValidationError):
            await services.deals.create_deal(buyer.id, make_draft(counterparty_phone=buyer.phone))

    @pytest.mark.asyncio
    async def test_notification_failure_does_not_fail_creation(
        self, services_factory, failing_notifier, buyer, seller, make_draft
    ) -> None:
        wired = services_factory(notifier=failing_notifier)
        view = await wired.deals.create_deal(buyer.id, make_draft())
        assert view.deal.deal_id == "ST000001"

    @pytest.mark.asyncio
    async def test_slow_notification_is_cut_off(
        self, services_factory, hanging_notifier, buyer, seller, make_draft
    ) -> None:
        wired = services_factory(notifier=hanging_notifier)
        view = await wired.deals.create_deal(buyer.id, make_draft())
        assert view.status == DealStatus.CREATED


class TestReads:
    @pytest.mark.asyncio
    async def test_lookup_by_uuid_or_number(self, services, buyer, seller, make_draft) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        by_uuid = await services.deals.get_deal(created.deal.id, seller.id)
        by_number = await services.deals.get_deal("st000001", seller.id)
        assert by_uuid.deal.id == by_number.deal.id
        assert by_number.can_accept is True

    @pytest.mark.asyncio
    async def test_unknown_deal(self, services, buyer) -> None:
        with pytest.raises(DealNotFoundError):
            await services.deals.get_deal("ST999999", buyer.id)

    @pytest.mark.asyncio
    async def test_outsider_cannot_view(self, services, buyer, seller, make_draft) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        outsider = await services.parties.register(phone="9111111111", first_name="Nosy")
        with pytest.raises(AuthorizationError):
            await services.deals.get_deal(created.deal.id, outsider.id)

    @pytest.mark.asyncio
    async def test_admin_can_view(self, services, buyer, seller, admin, make_draft) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        view = await services.deals.get_deal(created.deal.id, admin.id)
        assert view.role is None
        assert view.next_action == "Not authorized for this deal"

    @pytest.mark.asyncio
    async def test_list_filters_and_pages(self, services, clock, buyer, seller, make_draft) -> None:
        for title in ("First deal listing", "Second deal listing", "Third deal listing"):
            clock.advance(minutes=1)
            await services.deals.create_deal(buyer.id, make_draft(title=title))
        await services.deals.cancel_deal("ST000002", buyer.id)

        views, total = await services.deals.list_deals(buyer.id, page=1, limit=2)
        assert total == 3
        assert [v.deal.deal_id for v in views] == ["ST000003", "ST000002"]

        views, total = await services.deals.list_deals(seller.id, statuses=["cancelled"])
        assert total == 1
        assert views[0].status == DealStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_list_rejects_bad_paging(self, services, buyer) -> None:
        with pytest.raises(ValidationError):
            await services.deals.list_deals(buyer.id, page=0)
        with pytest.raises(ValidationError):
            await services.deals.list_deals(buyer.id, limit=101)


class TestAcceptance:
    @pytest.mark.asyncio
    async def test_initiator_accept_keeps_created(self, services, buyer, seller, make_draft) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        view = await services.deals.accept_deal(created.deal.id, buyer.id)
        assert view.status == DealStatus.CREATED
        assert view.next_action == "Waiting for seller to accept"
        assert services.notifier.messages_for(seller.id)[-1] == (
            "Deal ST000001 accepted by Asha Rao. Waiting for seller acceptance."
        )

    @pytest.mark.asyncio
    async def test_both_accept(self, services, buyer, seller, make_draft) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        await services.deals.accept_deal(created.deal.id, buyer.id)
        view = await services.deals.accept_deal(created.deal.id, seller.id)
        assert view.status == DealStatus.ACCEPTED
        assert view.deal.accepted_at is not None
        assert services.notifier.messages_for(buyer.id)[-1].startswith("Deal ST000001 fully accepted!")

    @pytest.mark.asyncio
    async def test_repeat_accept_sends_nothing(self, services, buyer, seller, make_draft) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        await services.deals.accept_deal(created.deal.id, seller.id)
        sent = len(services.notifier.sent)
        view = await services.deals.accept_deal(created.deal.id, seller.id)
        assert view.status == DealStatus.CREATED
        assert len(services.notifier.sent) == sent

    @pytest.mark.asyncio
    async def test_verified_seller_skips_kyc_gate(self, services, buyer, seller, make_draft, approve_kyc) -> None:
        await approve_kyc(seller.id)
        created = await services.deals.create_deal(buyer.id, make_draft())
        await services.deals.accept_deal(created.deal.id, buyer.id)
        view = await services.deals.accept_deal(created.deal.id, seller.id)
        assert view.status == DealStatus.DOCUMENTS_PENDING
        assert view.deal.workflow.kyc_verified.seller_kyc is True

    @pytest.mark.asyncio
    async def test_verified_buyer_only_is_kyc_pending(self, services, buyer, seller, make_draft, approve_kyc) -> None:
        await approve_kyc(buyer.id)
        created = await services.deals.create_deal(buyer.id, make_draft())
        await services.deals.accept_deal(created.deal.id, buyer.id)
        view = await services.deals.accept_deal(created.deal.id, seller.id)
        assert view.status == DealStatus.KYC_PENDING


class TestMessagesAndCancel:
    @pytest.mark.asyncio
    async def test_message_preview(self, services, buyer, seller, make_draft) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        text = "a" * 150
        view = await services.deals.add_message(created.deal.id, seller.id, text)
        assert view.deal.messages[-1].text == text
        assert services.notifier.messages_for(buyer.id)[-1] == (
            f"New message on deal ST000001 from Ravi Kumar: {'a' * 100}..."
        )

    @pytest.mark.asyncio
    async def test_cancel_notifies_counterparty(self, services, buyer, seller, make_draft) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        view = await services.deals.cancel_deal(created.deal.id, seller.id, reason="Sold elsewhere")
        assert view.status == DealStatus.CANCELLED
        assert view.deal.messages[-1].text == "Deal cancelled by Ravi Kumar: Sold elsewhere"
        assert services.notifier.messages_for(buyer.id)[-1] == "Deal ST000001 has been cancelled by Ravi Kumar."

    @pytest.mark.asyncio
    async def test_cancel_after_payment_rejected(self, services, buyer, seller, make_draft, run_deal) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        await run_deal(created.deal.id, buyer.id, seller.id, until="contract_pending")
        with pytest.raises(InvalidStateError):
            await services.deals.cancel_deal(created.deal.id, buyer.id)
        view = await services.deals.get_deal(created.deal.id, buyer.id)
        assert view.status == DealStatus.CONTRACT_PENDING

    @pytest.mark.asyncio
    async def test_outsider_cannot_cancel(self, services, buyer, seller, make_draft) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        outsider = await services.parties.register(phone="9111111111", first_name="Nosy")
        with pytest.raises(AuthorizationError):
            await services.deals.cancel_deal(created.deal.id, outsider.id)


class TestKycReminder:
    @pytest.mark.asyncio
    async def test_reminder_goes_to_seller(self, services, buyer, seller, make_draft, run_deal) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        await run_deal(created.deal.id, buyer.id, seller.id, until="accepted")
        view = await services.deals.send_kyc_reminder(created.deal.id, buyer.id)
        assert view.deal.messages[-1].text == "KYC reminder sent to seller"
        assert "complete your KYC" in services.notifier.messages_for(seller.id)[-1]


class TestDocuments:
    @pytest.mark.asyncio
    async def test_upload_moves_to_payment(self, services, buyer, seller, make_draft, run_deal) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        await run_deal(created.deal.id, buyer.id, seller.id, until="documents_pending")
        view = await services.deals.upload_document(
            created.deal.id, seller.id, "ownership", "rc.pdf", b"rc-scan", "application/pdf"
        )
        assert view.status == DealStatus.PAYMENT_PENDING
        document = view.deal.documents[-1]
        assert (document.filename, document.file_size, document.mime_type) == ("rc.pdf", 7, "application/pdf")
        assert services.file_store.files[document.url] == b"rc-scan"
        assert "deposit ₹50,000" in services.notifier.messages_for(buyer.id)[-1]

    @pytest.mark.asyncio
    async def test_bad_type_stores_nothing(self, services, buyer, seller, make_draft) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        with pytest.raises(ValidationError):
            await services.deals.upload_document(created.deal.id, seller.id, "passport", "p.pdf", b"x")
        assert services.file_store.files == {}

    @pytest.mark.asyncio
    async def test_outsider_stores_nothing(self, services, buyer, seller, make_draft) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        outsider = await services.parties.register(phone="9111111111", first_name="Nosy")
        with pytest.raises(AuthorizationError):
            await services.deals.upload_document(created.deal.id, outsider.id, "ownership", "rc.pdf", b"x")
        assert services.file_store.files == {}

    @pytest.mark.asyncio
    async def test_rejected_upload_removes_file(self, services, buyer, seller, make_draft) -> None:
        created = await services.deals.create_deal(buyer.id, make_draft())
        await services.deals.cancel_deal(created.deal.id, buyer.id)
        with pytest.raises(InvalidStateError):
            await services.deals.upload_document(created.deal.id, seller.id, "ownership", "rc.pdf", b"x")
        assert services.file_store.files == {}
        assert len(services.file_store.deleted) == 1


class TestPaymentToCompletion:
    @pytest.mark.asyncio
    async def test_happy_path(self, services, buyer, seller, make_draft, approve_kyc) -> None:
        deals = services.deals
        deal_id = (await deals.create_deal(buyer.id, make_draft())).deal.id
        progress_seen = []

        def track(view):
            progress_seen.append(view.progress)
            return view

        track(await deals.accept_deal(deal_id, buyer.id))
        track(await deals.accept_deal(deal_id, seller.id))
        await approve_kyc(seller.id)
        track(await deals.get_deal(deal_id, seller.id))
        track(await deals.upload_document(deal_id, seller.id, "ownership", "rc.pdf", b"rc"))

        view = track(await deals.deposit_payment(deal_id, buyer.id, "upi"))
        assert view.status == DealStatus.CONTRACT_PENDING
        assert view.deal.workflow.payment_deposited.transaction_id.startswith("TXN")

        track(await deals.sign_contract(deal_id, seller.id))
        view = track(await deals.sign_contract(deal_id, buyer.id))
        assert view.status == DealStatus.FUNDS_DEPOSITED
        assert len(view.deal.workflow.contract_signed.contract_hash) == 64

        view = track(await deals.mark_shipped(deal_id, seller.id))
        assert view.status == DealStatus.IN_DELIVERY
        view = track(await deals.mark_delivered(deal_id, seller.id, delivery_proof="Keys handed over"))
        assert view.status == DealStatus.DELIVERED

        view = track(await deals.confirm_receipt(deal_id, buyer.id, rating=5, feedback="Smooth"))
        assert view.status == DealStatus.COMPLETED
        assert view.progress == 100
        assert view.deal.workflow.funds_released.transaction_id.startswith("REL")
        assert view.deal.completed_at is not None
        assert progress_seen == sorted(progress_seen)
        assert "released to you" in services.notifier.messages_for(seller.id)[-1]

    @pytest.mark.asyncio
    async def test_seller_cannot_deposit(self, services, buyer, seller, make_draft, run_deal) -> None:
        deal_id = (await services.deals.create_deal(buyer.id, make_draft())).deal.id
        await run_deal(deal_id, buyer.id, seller.id, until="payment_pending")
        with pytest.raises(AuthorizationError):
            await services.deals.deposit_payment(deal_id, seller.id, "upi")

    @pytest.mark.asyncio
    async def test_deposit_too_early(self, services, buyer, seller, make_draft) -> None:
        deal_id = (await services.deals.create_deal(buyer.id, make_draft())).deal.id
        with pytest.raises(InvalidStateError):
            await services.deals.deposit_payment(deal_id, buyer.id, "upi")

    @pytest.mark.asyncio
    async def test_unknown_payment_method(self, services, buyer, seller, make_draft) -> None:
        deal_id = (await services.deals.create_deal(buyer.id, make_draft())).deal.id
        with pytest.raises(ValidationError):
            await services.deals.deposit_payment(deal_id, buyer.id, "cheque")

    @pytest.mark.asyncio
    async def test_seller_cannot_confirm(self, services, buyer, seller, make_draft, run_deal) -> None:
        deal_id = (await services.deals.create_deal(buyer.id, make_draft())).deal.id
        await run_deal(deal_id, buyer.id, seller.id, until="delivered")
        with pytest.raises(AuthorizationError):
            await services.deals.confirm_receipt(deal_id, seller.id)


class TestDisputes:
    @pytest.mark.asyncio
    async def test_dispute_notifies_counterparty(self, services, buyer, seller, make_draft, run_deal) -> None:
        deal_id = (await services.deals.create_deal(buyer.id, make_draft())).deal.id
        await run_deal(deal_id, buyer.id, seller.id, until="delivered")
        view = await services.deals.raise_dispute(deal_id, buyer.id, "Odometer tampered", "Reads 12,000 km")
        assert view.status == DealStatus.DISPUTED
        assert view.deal.dispute.description == "Reads 12,000 km"
        assert services.notifier.messages_for(seller.id)[-1] == (
            "A dispute has been raised on deal ST000001: Odometer tampered"
        )

    @pytest.mark.asyncio
    async def test_dispute_before_funding(self, services, buyer, seller, make_draft) -> None:
        deal_id = (await services.deals.create_deal(buyer.id, make_draft())).deal.id
        with pytest.raises(InvalidStateError):
            await services.deals.raise_dispute(deal_id, buyer.id, "Changed my mind")

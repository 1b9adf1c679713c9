"""Deal Service: application layer for the deal lifecycle.

Coordinates between:
    - the pure workflow engine (domain/deal_commands.apply)
    - repositories (data access)
    - the entity lock manager
    - payment and notification collaborators

Every mutating call follows the same shape: resolve the deal, take its
``deal:<uuid>`` lock, re-read it, apply one or more commands, save and
commit, release the lock, then notify. Each public method returns a
DealView for the caller.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from decimal import Decimal, InvalidOperation
from typing import TYPE_CHECKING

from safe_transfer.domain.deal_commands import (
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
    require_eligible,
)
from safe_transfer.domain.deal_workflow import (
    DealState,
    DealTerms,
    DealView,
    Workflow,
    required_document_types,
    snapshot,
)
from safe_transfer.domain.enums import (
    DealAction,
    DealCategory,
    DealDocumentType,
    DealStatus,
    DeliveryMethod,
    DisputeOutcome,
    KycStatus,
    PartyRole,
    PaymentMethod,
)
from safe_transfer.domain.exceptions import (
    AuthorizationError,
    DealNotFoundError,
    FileStoreError,
    InvalidStateError,
    PreconditionError,
    ValidationError,
)
from safe_transfer.domain.fees import calculate_escrow_fee
from safe_transfer.domain.ports import FileMetadata
from safe_transfer.infrastructure.database.repositories import CounterRepository, DealRepository
from safe_transfer.infrastructure.locks import DEAL_SEQUENCE_LOCK, deal_lock_key
from safe_transfer.infrastructure.party_directory import SqlPartyDirectory
from safe_transfer.logging_config import get_logger
from safe_transfer.services.notification_service import preview

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from sqlalchemy.ext.asyncio import AsyncSession

    from safe_transfer.domain.ports import FileStore, PartyInfo
    from safe_transfer.infrastructure.locks import LockManager
    from safe_transfer.services.notification_service import NotificationService
    from safe_transfer.services.payment_service import PaymentService

logger = get_logger(__name__)

PHONE_PATTERN = re.compile(r"^[6-9][0-9]{9}$")
MIN_AMOUNT = Decimal("1000")
MAX_AMOUNT = Decimal("100000000")


def utcnow() -> datetime:
    return datetime.now(UTC)


def format_amount(amount: Decimal) -> str:
    """Indian-rupee display used in notification texts: 50000 -> '50,000'."""
    if amount == amount.to_integral_value():
        return f"{amount:,.0f}"
    return f"{amount:,.2f}"


@dataclass(frozen=True)
class DealDraft:
    """Everything a party supplies to open a deal.

    ``role`` is the initiator's side; the counterparty takes the other one.
    """

    title: str
    description: str
    category: str
    amount: Decimal
    delivery_method: str
    role: str
    counterparty_phone: str | None
    counterparty_name: str | None = None
    subcategory: str | None = None
    inspection_period: int = 3
    additional_terms: str | None = None


def validate_draft(draft: DealDraft) -> None:
    """Collect every field problem into one ValidationError."""
    errors: list[dict[str, str]] = []

    def bad(field_name: str, message: str) -> None:
        errors.append({"field": field_name, "message": message})

    title = (draft.title or "").strip()
    if not 5 <= len(title) <= 200:
        bad("title", "Title must be between 5 and 200 characters")
    description = (draft.description or "").strip()
    if not 10 <= len(description) <= 2000:
        bad("description", "Description must be between 10 and 2000 characters")
    if draft.category not in DealCategory.__members__.values():
        bad("category", "Invalid category")
    if draft.subcategory and len(draft.subcategory.strip()) > 100:
        bad("subcategory", "Subcategory cannot exceed 100 characters")
    try:
        amount = Decimal(draft.amount)
        if not MIN_AMOUNT <= amount <= MAX_AMOUNT:
            bad("amount", "Amount must be between ₹1,000 and ₹10,00,00,000")
    except (InvalidOperation, TypeError, ValueError):
        bad("amount", "Amount must be a number")
    if draft.delivery_method not in DeliveryMethod.__members__.values():
        bad("delivery_method", "Invalid delivery method")
    if not 1 <= int(draft.inspection_period) <= 30:
        bad("inspection_period", "Inspection period must be between 1 and 30 days")
    if draft.additional_terms and len(draft.additional_terms.strip()) > 1000:
        bad("additional_terms", "Additional terms cannot exceed 1000 characters")

    if draft.role not in PartyRole.__members__.values():
        bad("role", "Role must be buyer or seller")
    else:
        counterparty = "seller" if draft.role == PartyRole.BUYER else "buyer"
        if not draft.counterparty_phone:
            bad(f"{counterparty}_phone", f"{counterparty.capitalize()} phone is required")
        elif not PHONE_PATTERN.match(draft.counterparty_phone):
            bad(f"{counterparty}_phone", "Please provide a valid Indian phone number")

    if errors:
        raise ValidationError(errors)


class DealService:
    """Manages the deal lifecycle."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        locks: LockManager,
        notifications: NotificationService,
        payments: PaymentService,
        file_store: FileStore,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._deals = DealRepository(session)
        self._counters = CounterRepository(session)
        self._parties = SqlPartyDirectory(session)
        self._locks = locks
        self._notifications = notifications
        self._payments = payments
        self._file_store = file_store
        self._clock = clock

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    async def _load(self, deal_ref: str) -> DealState:
        state = await self._deals.get_by_id(deal_ref)
        if state is None:
            raise DealNotFoundError(deal_ref)
        return state

    async def _mutate(
        self,
        deal_ref: str,
        mutate: Callable[[DealState, datetime], Awaitable[DealState]],
    ) -> tuple[DealState, DealState]:
        """Run ``mutate`` on the freshly read deal under its lock and commit.

        Returns ``(before, after)``; ``after is before`` when nothing changed.
        """
        located = await self._load(deal_ref)
        async with self._locks.hold(deal_lock_key(located.id)):
            try:
                before = await self._load(located.id)
                after = await mutate(before, self._clock())
                if after is not before:
                    after = await self._deals.save(after)
                await self._session.commit()
            except Exception:
                await self._session.rollback()
                raise
        return before, after

    async def _notify(self, party_id: str | None, message: str, event: str) -> None:
        party = await self._parties.get(party_id) if party_id else None
        await self._notifications.send(party, message, event=event)

    async def _kyc_flags(self, state: DealState) -> SyncKyc:
        parties = await self._parties.get_many([state.buyer_id, state.seller_id])
        buyer, seller = parties.get(state.buyer_id), parties.get(state.seller_id)
        return SyncKyc(
            buyer_approved=bool(buyer and buyer.kyc_status == KycStatus.APPROVED),
            seller_approved=bool(seller and seller.kyc_status == KycStatus.APPROVED),
        )

    # ------------------------------------------------------------------
    # Creation and reads
    # ------------------------------------------------------------------

    async def create_deal(self, initiator_id: str, draft: DealDraft) -> DealView:
        """Open a deal and invite the counterparty, provisioning them if unknown."""
        validate_draft(draft)

        initiator = await self._parties.get(initiator_id)
        if initiator is None:
            raise ValidationError.for_field("initiator_id", "Initiator not found")
        if draft.counterparty_phone == initiator.phone:
            raise ValidationError.for_field("counterparty_phone", "You cannot create a deal with yourself")

        role = PartyRole(draft.role)
        amount = Decimal(draft.amount)
        fee = calculate_escrow_fee(amount, initiator.user_type)
        now = self._clock()

        async with self._locks.hold(DEAL_SEQUENCE_LOCK):
            try:
                counterparty = await self._parties.find_by_contact(draft.counterparty_phone)
                if counterparty is None:
                    fallback = "Seller" if role == PartyRole.BUYER else "Buyer"
                    counterparty = await self._parties.provision(
                        draft.counterparty_phone, draft.counterparty_name, fallback_name=fallback
                    )

                buyer, seller = (initiator, counterparty) if role == PartyRole.BUYER else (counterparty, initiator)
                workflow = Workflow()
                workflow.deal_created.mark_completed(now)
                workflow.deal_created.completed_by = initiator.id
                docs = workflow.documents_uploaded
                docs.buyer_required_docs = required_document_types(draft.category, PartyRole.BUYER)
                docs.seller_required_docs = required_document_types(draft.category, PartyRole.SELLER)

                number = await self._counters.next_value("deal")
                state = DealState(
                    id=str(uuid.uuid4()),
                    deal_id=f"ST{number:06d}",
                    buyer_id=buyer.id,
                    seller_id=seller.id,
                    initiator_id=initiator.id,
                    terms=DealTerms(
                        title=draft.title.strip(),
                        description=draft.description.strip(),
                        category=draft.category,
                        subcategory=(draft.subcategory or "").strip() or None,
                        amount=amount,
                        escrow_fee=fee.base_fee,
                        escrow_fee_percentage=fee.percentage,
                        delivery_method=draft.delivery_method,
                        inspection_period=int(draft.inspection_period),
                        additional_terms=(draft.additional_terms or "").strip() or None,
                    ),
                    workflow=workflow,
                    created_at=now,
                    updated_at=now,
                )
                state = await self._deals.create(state)
                await self._session.commit()
            except Exception:
                await self._session.rollback()
                raise

        logger.info(
            "deal.created",
            deal_id=state.deal_id,
            amount=str(amount),
            category=draft.category,
            initiator_role=role.value,
            counterparty_provisioned=not counterparty.is_claimed,
        )

        invitation = (
            f"New escrow deal invitation from {initiator.full_name} for ₹{format_amount(amount)}. "
            f"Deal ID: {state.deal_id}. "
        )
        if counterparty.is_claimed:
            invitation += "Login to Safe Transfer app to view details."
        else:
            invitation += "Download Safe Transfer app and create your account to view details."
        await self._notifications.send(counterparty, invitation, event="deal.invitation")

        return snapshot(state, initiator.id)

    async def get_deal(self, deal_ref: str, user_id: str) -> DealView:
        state = await self._load(deal_ref)
        if state.role_of(user_id) is None and not await self._parties.is_admin(user_id):
            raise AuthorizationError("Not authorized to view this deal")
        return snapshot(state, user_id)

    async def list_deals(
        self,
        user_id: str,
        statuses: list[str] | None = None,
        category: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[DealView], int]:
        """Deals the user is a party to, newest first, plus the total count."""
        if page < 1 or not 1 <= limit <= 100:
            raise ValidationError.for_field("page", "page must be >= 1 and limit between 1 and 100")
        deals, total = await self._deals.list_for_party(user_id, statuses, category, page, limit)
        return [snapshot(d, user_id) for d in deals], total

    # ------------------------------------------------------------------
    # Agreement
    # ------------------------------------------------------------------

    async def accept_deal(self, deal_ref: str, user_id: str) -> DealView:
        async def mutate(state: DealState, now: datetime) -> DealState:
            new_state = apply(state, AcceptDeal(user_id=user_id), now)
            if new_state is not state and new_state.workflow.parties_accepted.completed:
                new_state = apply(new_state, await self._kyc_flags(new_state), now)
            return new_state

        before, after = await self._mutate(deal_ref, mutate)
        if after is before:
            logger.info("deal.accept_repeated", deal_id=after.deal_id, user_id=user_id)
            return snapshot(after, user_id)

        role = after.role_of(user_id)
        logger.info("deal.accepted", deal_id=after.deal_id, side=role, status=after.status)
        if after.workflow.parties_accepted.completed:
            text = f"Deal {after.deal_id} fully accepted! Both parties have agreed. Next step: Complete KYC verification."
        else:
            actor = await self._parties.get(user_id)
            waiting = "seller" if role == PartyRole.BUYER else "buyer"
            name = actor.full_name if actor else role.capitalize()
            text = f"Deal {after.deal_id} accepted by {name}. Waiting for {waiting} acceptance."
        await self._notify(after.counterparty_id(user_id), text, "deal.accepted")
        return snapshot(after, user_id)

    async def add_message(self, deal_ref: str, user_id: str, text: str) -> DealView:
        async def mutate(state: DealState, now: datetime) -> DealState:
            return apply(state, AddMessage(user_id=user_id, text=text), now)

        _, after = await self._mutate(deal_ref, mutate)
        logger.info("deal.message_added", deal_id=after.deal_id, sender_id=user_id, length=len(text))

        sender = await self._parties.get(user_id)
        name = sender.full_name if sender else "Counterparty"
        await self._notify(
            after.counterparty_id(user_id),
            f"New message on deal {after.deal_id} from {name}: {preview(text.strip())}",
            "deal.message",
        )
        return snapshot(after, user_id)

    async def cancel_deal(self, deal_ref: str, user_id: str, reason: str | None = None) -> DealView:
        actor = await self._parties.get(user_id)
        actor_name = actor.full_name if actor else "a party"

        async def mutate(state: DealState, now: datetime) -> DealState:
            return apply(state, CancelDeal(user_id=user_id, actor_name=actor_name, reason=reason), now)

        before, after = await self._mutate(deal_ref, mutate)
        logger.info("deal.cancelled", deal_id=after.deal_id, from_status=before.status, by=user_id)
        await self._notify(
            after.counterparty_id(user_id),
            f"Deal {after.deal_id} has been cancelled by {actor_name}.",
            "deal.cancelled",
        )
        return snapshot(after, user_id)

    # ------------------------------------------------------------------
    # KYC gate
    # ------------------------------------------------------------------

    async def sync_kyc_for_party(self, party_id: str) -> list[str]:
        """Re-evaluate the KYC gate on every deal of ``party_id`` still waiting on it.

        Returns the deal numbers whose status moved.
        """
        advanced: list[str] = []
        for deal_uuid in await self._deals.ids_waiting_for_kyc(party_id):

            async def mutate(state: DealState, now: datetime) -> DealState:
                return apply(state, await self._kyc_flags(state), now)

            before, after = await self._mutate(deal_uuid, mutate)
            if after.status != before.status:
                advanced.append(after.deal_id)
                logger.info("deal.kyc_synced", deal_id=after.deal_id, status=after.status)
                if after.status == DealStatus.DOCUMENTS_PENDING:
                    counterparty = after.counterparty_id(party_id)
                    await self._notify(
                        counterparty,
                        f"KYC verified for deal {after.deal_id}. Next step: upload the required documents.",
                        "deal.kyc_verified",
                    )
        return advanced

    async def send_kyc_reminder(self, deal_ref: str, user_id: str) -> DealView:
        state = await self._load(deal_ref)
        role = state.role_of(user_id)
        if role is None:
            raise AuthorizationError("Not authorized for this deal")
        counterparty = await self._parties.get(state.counterparty_id(user_id))
        if counterparty is not None and counterparty.kyc_status == KycStatus.APPROVED:
            raise PreconditionError("Counterparty KYC is already approved")
        other_side = "seller" if role == PartyRole.BUYER else "buyer"

        async def mutate(current: DealState, now: datetime) -> DealState:
            return apply(current, AddMessage(user_id=user_id, text=f"KYC reminder sent to {other_side}", is_system=True), now)

        _, after = await self._mutate(deal_ref, mutate)
        await self._notifications.send(
            counterparty,
            f"Reminder: please complete your KYC verification to continue deal {after.deal_id} on Safe Transfer.",
            event="deal.kyc_reminder",
        )
        logger.info("deal.kyc_reminder_sent", deal_id=after.deal_id, to=other_side)
        return snapshot(after, user_id)

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def upload_document(
        self,
        deal_ref: str,
        user_id: str,
        document_type: str,
        filename: str,
        data: bytes,
        content_type: str | None = None,
    ) -> DealView:
        if document_type not in DealDocumentType.__members__.values():
            valid = ", ".join(t.value for t in DealDocumentType)
            raise ValidationError.for_field("document_type", f"Document type must be one of: {valid}")
        if not data:
            raise ValidationError.for_field("file", "File is empty")
        located = await self._load(deal_ref)
        if located.role_of(user_id) is None:
            raise AuthorizationError("Not authorized for this deal")

        url = await self._file_store.store(
            data,
            FileMetadata(filename=filename, content_type=content_type, owner_id=user_id, category="deals"),
        )

        async def mutate(state: DealState, now: datetime) -> DealState:
            return apply(
                state,
                UploadDealDocument(
                    user_id=user_id,
                    document_type=document_type,
                    filename=filename,
                    url=url,
                    file_size=len(data),
                    mime_type=content_type,
                ),
                now,
            )

        try:
            before, after = await self._mutate(deal_ref, mutate)
        except Exception:
            await self._discard_file(url)
            raise

        logger.info("deal.document_uploaded", deal_id=after.deal_id, document_type=document_type, by=user_id)
        uploader = await self._parties.get(user_id)
        name = uploader.full_name if uploader else "Counterparty"
        await self._notify(
            after.counterparty_id(user_id),
            f"{name} uploaded a {document_type} document on deal {after.deal_id}.",
            "deal.document_uploaded",
        )
        if before.status != after.status and after.status == DealStatus.PAYMENT_PENDING:
            await self._notify(
                after.buyer_id,
                f"All documents are in for deal {after.deal_id}. Next step: deposit ₹{format_amount(after.terms.amount)} into escrow.",
                "deal.documents_completed",
            )
        return snapshot(after, user_id)

    async def _discard_file(self, url: str) -> None:
        try:
            await self._file_store.delete(url)
        except FileStoreError as exc:
            logger.warning("deal.orphan_file", url=url, error=str(exc))

    # ------------------------------------------------------------------
    # Money and contract
    # ------------------------------------------------------------------

    async def deposit_payment(self, deal_ref: str, user_id: str, payment_method: str) -> DealView:
        if payment_method not in PaymentMethod.__members__.values():
            raise ValidationError.for_field("payment_method", "Invalid payment method")

        async def mutate(state: DealState, now: datetime) -> DealState:
            require_eligible(state, user_id, DealAction.DEPOSIT_PAYMENT)
            tx_id = await self._payments.deposit(state.deal_id, state.terms.amount, payment_method, user_id)
            return apply(
                state,
                DepositPayment(user_id=user_id, payment_method=payment_method, transaction_id=tx_id),
                now,
            )

        _, after = await self._mutate(deal_ref, mutate)
        tx_id = after.workflow.payment_deposited.transaction_id
        logger.info("deal.payment_deposited", deal_id=after.deal_id, tx_id=tx_id, method=payment_method)
        await self._notify(
            after.seller_id,
            f"Payment of ₹{format_amount(after.terms.amount)} deposited into escrow for deal {after.deal_id}. "
            "Next step: sign the digital contract.",
            "deal.payment_deposited",
        )
        return snapshot(after, user_id)

    async def sign_contract(self, deal_ref: str, user_id: str) -> DealView:
        async def mutate(state: DealState, now: datetime) -> DealState:
            return apply(state, SignContract(user_id=user_id), now)

        before, after = await self._mutate(deal_ref, mutate)
        if after is before:
            return snapshot(after, user_id)

        logger.info("deal.contract_signed", deal_id=after.deal_id, by=user_id, status=after.status)
        if after.workflow.contract_signed.completed:
            text = f"Contract for deal {after.deal_id} signed by both parties. Seller can now deliver."
        else:
            text = f"Your counterparty signed the contract for deal {after.deal_id}. Please sign to continue."
        await self._notify(after.counterparty_id(user_id), text, "deal.contract_signed")
        return snapshot(after, user_id)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    async def mark_shipped(self, deal_ref: str, user_id: str) -> DealView:
        async def mutate(state: DealState, now: datetime) -> DealState:
            return apply(state, MarkShipped(user_id=user_id), now)

        _, after = await self._mutate(deal_ref, mutate)
        logger.info("deal.item_shipped", deal_id=after.deal_id)
        await self._notify(after.buyer_id, f"Seller has shipped the item for deal {after.deal_id}.", "deal.item_shipped")
        return snapshot(after, user_id)

    async def mark_delivered(self, deal_ref: str, user_id: str, delivery_proof: str | None = None) -> DealView:
        async def mutate(state: DealState, now: datetime) -> DealState:
            return apply(state, MarkDelivered(user_id=user_id, delivery_proof=delivery_proof), now)

        _, after = await self._mutate(deal_ref, mutate)
        logger.info("deal.item_delivered", deal_id=after.deal_id)
        await self._notify(
            after.buyer_id,
            f"Item for deal {after.deal_id} marked as delivered. Please inspect and confirm receipt "
            f"within {after.terms.inspection_period} days.",
            "deal.item_delivered",
        )
        return snapshot(after, user_id)

    async def confirm_receipt(
        self,
        deal_ref: str,
        user_id: str,
        rating: int | None = None,
        feedback: str | None = None,
    ) -> DealView:
        async def mutate(state: DealState, now: datetime) -> DealState:
            require_eligible(state, user_id, DealAction.CONFIRM_RECEIPT)
            if rating is not None and not 1 <= rating <= 5:
                raise ValidationError.for_field("rating", "Rating must be between 1 and 5")
            tx_id = await self._payments.release(state.deal_id, state.terms.amount, state.seller_id)
            command = ConfirmReceipt(user_id=user_id, transaction_id=tx_id, rating=rating, feedback=feedback)
            return apply(state, command, now)

        _, after = await self._mutate(deal_ref, mutate)
        logger.info("deal.completed", deal_id=after.deal_id, rating=rating)
        await self._notify(
            after.seller_id,
            f"Buyer confirmed receipt for deal {after.deal_id}. ₹{format_amount(after.terms.amount)} released to you.",
            "deal.funds_released",
        )
        return snapshot(after, user_id)

    # ------------------------------------------------------------------
    # Disputes
    # ------------------------------------------------------------------

    async def raise_dispute(
        self,
        deal_ref: str,
        user_id: str,
        reason: str,
        description: str | None = None,
    ) -> DealView:
        async def mutate(state: DealState, now: datetime) -> DealState:
            return apply(state, RaiseDispute(user_id=user_id, reason=reason, description=description), now)

        before, after = await self._mutate(deal_ref, mutate)
        logger.info("deal.disputed", deal_id=after.deal_id, from_status=before.status, by=user_id)
        await self._notify(
            after.counterparty_id(user_id),
            f"A dispute has been raised on deal {after.deal_id}: {preview(reason.strip())}",
            "deal.disputed",
        )
        return snapshot(after, user_id)

    # ------------------------------------------------------------------
    # Admin-driven (callers check admin rights first)
    # ------------------------------------------------------------------

    async def review_deal(
        self,
        deal_ref: str,
        admin_id: str,
        action: str,
        notes: str | None = None,
        risk_score: int | None = None,
        risk_factors: list[str] | None = None,
    ) -> DealView:
        command = ReviewDeal(
            admin_id=admin_id,
            action=action,
            notes=notes,
            risk_score=risk_score,
            risk_factors=risk_factors,
        )

        async def mutate(state: DealState, now: datetime) -> DealState:
            return apply(state, command, now)

        _, after = await self._mutate(deal_ref, mutate)
        logger.info("deal.reviewed", deal_id=after.deal_id, action=action, flagged=after.flag.flagged)
        return snapshot(after, admin_id)

    async def assign_dispute(self, deal_ref: str, admin_id: str) -> DealView:
        async def mutate(state: DealState, now: datetime) -> DealState:
            return apply(state, AssignDispute(admin_id=admin_id), now)

        _, after = await self._mutate(deal_ref, mutate)
        logger.info("deal.dispute_assigned", deal_id=after.deal_id, admin_id=admin_id)
        return snapshot(after, admin_id)

    async def resolve_dispute(
        self,
        deal_ref: str,
        admin_id: str,
        outcome: str,
        resolution: str | None = None,
    ) -> DealView:
        if outcome not in DisputeOutcome.__members__.values():
            raise ValidationError.for_field("outcome", "Outcome must be 'release' or 'refund'")

        async def mutate(state: DealState, now: datetime) -> DealState:
            if state.status != DealStatus.DISPUTED:
                raise InvalidStateError(state.status, "resolve dispute")
            if outcome == DisputeOutcome.RELEASE:
                tx_id = await self._payments.release(state.deal_id, state.terms.amount, state.seller_id)
            else:
                tx_id = await self._payments.refund(state.deal_id, state.terms.amount, state.buyer_id)
            command = ResolveDispute(admin_id=admin_id, outcome=outcome, resolution=resolution, transaction_id=tx_id)
            return apply(state, command, now)

        _, after = await self._mutate(deal_ref, mutate)
        logger.info("deal.dispute_resolved", deal_id=after.deal_id, outcome=outcome, status=after.status)
        text = f"Dispute on deal {after.deal_id} resolved: " + (
            "funds released to seller." if outcome == DisputeOutcome.RELEASE else "funds refunded to buyer."
        )
        for party_id in (after.buyer_id, after.seller_id):
            await self._notify(party_id, text, "deal.dispute_resolved")
        return snapshot(after, admin_id)

    async def list_flagged(self, min_risk: int, max_risk: int, admin_id: str) -> list[DealView]:
        return [snapshot(d, admin_id) for d in await self._deals.list_flagged(min_risk, max_risk)]

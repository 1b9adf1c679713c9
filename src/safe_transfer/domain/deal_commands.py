"""Deal commands and the pure transition function.

``apply(state, command, now)`` is the only way a DealState changes. Each
handler mutates a deep copy of the state and names the status events it
fired; ``apply`` then checks those events against DealStateMachine and
against the status derived from the updated workflow. If any check fails
the caller's state object is untouched.

Party, role and eligibility errors are raised by the handlers. Admin
authorization happens one layer up, in the services.
"""

from __future__ import annotations

import copy
import hashlib
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable

from safe_transfer.domain.deal_workflow import (
    CANCELLABLE_STATUSES,
    DISPUTABLE_STATUSES,
    TERMINAL_STATUSES,
    DealDocument,
    DealState,
    Dispute,
    FlagInfo,
    Message,
    can_perform_action,
    check_step_order,
    derive_status,
)
from safe_transfer.domain.enums import (
    DealAction,
    DealClosure,
    DealDocumentType,
    DealReviewAction,
    DealStatus,
    DisputeOutcome,
    DisputeStatus,
    PartyRole,
)
from safe_transfer.domain.exceptions import (
    AuthorizationError,
    InvalidStateError,
    ValidationError,
    WorkflowInconsistencyError,
)
from safe_transfer.domain.state_machine import validate_transition

MAX_MESSAGE_LENGTH = 1000


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AcceptDeal:
    user_id: str


@dataclass(frozen=True)
class AddMessage:
    user_id: str
    text: str
    is_system: bool = False


@dataclass(frozen=True)
class CancelDeal:
    user_id: str
    actor_name: str
    reason: str | None = None


@dataclass(frozen=True)
class SyncKyc:
    buyer_approved: bool
    seller_approved: bool


@dataclass(frozen=True)
class UploadDealDocument:
    user_id: str
    document_type: str
    filename: str
    url: str
    file_size: int | None = None
    mime_type: str | None = None


@dataclass(frozen=True)
class DepositPayment:
    user_id: str
    payment_method: str
    transaction_id: str


@dataclass(frozen=True)
class SignContract:
    user_id: str


@dataclass(frozen=True)
class MarkShipped:
    user_id: str


@dataclass(frozen=True)
class MarkDelivered:
    user_id: str
    delivery_proof: str | None = None


@dataclass(frozen=True)
class ConfirmReceipt:
    user_id: str
    transaction_id: str
    rating: int | None = None
    feedback: str | None = None


@dataclass(frozen=True)
class RaiseDispute:
    user_id: str
    reason: str
    description: str | None = None


@dataclass(frozen=True)
class AssignDispute:
    admin_id: str


@dataclass(frozen=True)
class ResolveDispute:
    admin_id: str
    outcome: str
    resolution: str | None = None
    transaction_id: str | None = None


@dataclass(frozen=True)
class ReviewDeal:
    admin_id: str
    action: str
    notes: str | None = None
    risk_score: int | None = None
    risk_factors: list[str] | None = field(default=None)


DealCommand = (
    AcceptDeal
    | AddMessage
    | CancelDeal
    | SyncKyc
    | UploadDealDocument
    | DepositPayment
    | SignContract
    | MarkShipped
    | MarkDelivered
    | ConfirmReceipt
    | RaiseDispute
    | AssignDispute
    | ResolveDispute
    | ReviewDeal
)


class _Unchanged:
    def __repr__(self) -> str:
        return "UNCHANGED"


UNCHANGED = _Unchanged()
"""Returned by a handler when the command leaves the deal exactly as it was."""

_Events = tuple[str, ...]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _require_party(state: DealState, user_id: str) -> PartyRole:
    role = state.role_of(user_id)
    if role is None:
        raise AuthorizationError("Not authorized for this deal")
    return role


_ACTION_STATUSES: dict[DealAction, frozenset[DealStatus]] = {
    DealAction.DEPOSIT_PAYMENT: frozenset({DealStatus.PAYMENT_PENDING}),
    DealAction.SIGN_CONTRACT: frozenset({DealStatus.CONTRACT_PENDING}),
    DealAction.MARK_DELIVERED: frozenset({DealStatus.FUNDS_DEPOSITED, DealStatus.IN_DELIVERY}),
    DealAction.CONFIRM_RECEIPT: frozenset({DealStatus.DELIVERED}),
    DealAction.RAISE_DISPUTE: DISPUTABLE_STATUSES,
}


def require_eligible(state: DealState, user_id: str, action: DealAction) -> PartyRole:
    """Party check, then status check, then role check."""
    role = _require_party(state, user_id)
    if can_perform_action(state, user_id, action):
        return role
    status = state.status
    if status not in _ACTION_STATUSES[action]:
        raise InvalidStateError(status, action.replace("_", " "))
    raise AuthorizationError(f"{role.capitalize()} is not allowed to {action.replace('_', ' ')}")


def _system_message(state: DealState, sender_id: str, text: str, now: datetime) -> None:
    state.messages.append(Message(sender_id=sender_id, text=text, timestamp=now, is_system=True))


def contract_hash(state: DealState) -> str:
    """SHA-256 over the deal identity, parties and canonical terms."""
    payload = {
        "deal_id": state.deal_id,
        "buyer_id": state.buyer_id,
        "seller_id": state.seller_id,
        "terms": state.terms.canonical(),
    }
    encoded = json.dumps(payload, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return hashlib.sha256(encoded).hexdigest()


def _advance_documents(state: DealState, now: datetime) -> _Events:
    """Complete the documents step once both sides have every required type."""
    docs = state.workflow.documents_uploaded
    if state.status != DealStatus.DOCUMENTS_PENDING or docs.completed:
        return ()
    if not (docs.side_complete(PartyRole.BUYER) and docs.side_complete(PartyRole.SELLER)):
        return ()
    docs.mark_completed(now)
    _system_message(state, state.seller_id, "All required documents uploaded. Proceed to payment.", now)
    return ("documents_completed",)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _accept(state: DealState, cmd: AcceptDeal, now: datetime) -> _Events | _Unchanged:
    role = _require_party(state, cmd.user_id)
    accepted = state.workflow.parties_accepted
    if accepted.accepted(role):
        return UNCHANGED
    if state.status != DealStatus.CREATED:
        raise AuthorizationError("Not authorized to accept this deal or deal already accepted")

    if role == PartyRole.BUYER:
        accepted.buyer_accepted = True
        accepted.buyer_accepted_at = now
    else:
        accepted.seller_accepted = True
        accepted.seller_accepted_at = now
    _system_message(state, cmd.user_id, f"{role.capitalize()} has accepted the deal", now)

    if accepted.buyer_accepted and accepted.seller_accepted:
        accepted.mark_completed(now)
        state.accepted_at = now
        return ("parties_accepted",)
    return ()


def _add_message(state: DealState, cmd: AddMessage, now: datetime) -> _Events:
    _require_party(state, cmd.user_id)
    text = cmd.text.strip()
    if not text:
        raise ValidationError.for_field("text", "Message text is required")
    if len(cmd.text) > MAX_MESSAGE_LENGTH:
        raise ValidationError.for_field("text", f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters")
    state.messages.append(Message(sender_id=cmd.user_id, text=text, timestamp=now, is_system=cmd.is_system))
    return ()


def _cancel(state: DealState, cmd: CancelDeal, now: datetime) -> _Events:
    _require_party(state, cmd.user_id)
    status = state.status
    if status not in CANCELLABLE_STATUSES:
        raise InvalidStateError(status, "cancel")
    state.closure = DealClosure.CANCELLED
    text = f"Deal cancelled by {cmd.actor_name}"
    if cmd.reason and cmd.reason.strip():
        text += f": {cmd.reason.strip()}"
    _system_message(state, cmd.user_id, text, now)
    return ("deal_cancelled",)


def _sync_kyc(state: DealState, cmd: SyncKyc, now: datetime) -> _Events | _Unchanged:
    if state.closure is not None or not state.workflow.parties_accepted.completed:
        return UNCHANGED

    kyc = state.workflow.kyc_verified
    buyer = kyc.buyer_kyc or cmd.buyer_approved
    seller = kyc.seller_kyc or cmd.seller_approved
    if (buyer, seller) == (kyc.buyer_kyc, kyc.seller_kyc):
        return UNCHANGED

    status = state.status
    kyc.buyer_kyc = buyer
    kyc.seller_kyc = seller
    if kyc.completed:
        return ()
    if not seller:
        return ("kyc_started",) if status == DealStatus.ACCEPTED else ()

    kyc.mark_completed(now)
    return ("kyc_verified", *_advance_documents(state, now))


def _upload_document(state: DealState, cmd: UploadDealDocument, now: datetime) -> _Events:
    role = _require_party(state, cmd.user_id)
    try:
        doc_type = DealDocumentType(cmd.document_type)
    except ValueError:
        valid = ", ".join(t.value for t in DealDocumentType)
        raise ValidationError.for_field("document_type", f"Document type must be one of: {valid}") from None
    status = state.status
    if status in TERMINAL_STATUSES:
        raise InvalidStateError(status, "upload documents")

    state.documents.append(
        DealDocument(
            uploaded_by=cmd.user_id,
            document_type=doc_type.value,
            filename=cmd.filename,
            url=cmd.url,
            uploaded_at=now,
            file_size=cmd.file_size,
            mime_type=cmd.mime_type,
        )
    )
    _system_message(state, cmd.user_id, f"{role.capitalize()} uploaded {doc_type.value} document: {cmd.filename}", now)

    docs = state.workflow.documents_uploaded
    if docs.completed:
        return ()
    uploaded = docs.uploaded_by(role)
    if doc_type.value not in uploaded:
        uploaded.append(doc_type.value)
    complete = docs.side_complete(role)
    if role == PartyRole.BUYER:
        docs.buyer_docs = complete
    else:
        docs.seller_docs = complete
    return _advance_documents(state, now)


def _deposit_payment(state: DealState, cmd: DepositPayment, now: datetime) -> _Events:
    require_eligible(state, cmd.user_id, DealAction.DEPOSIT_PAYMENT)
    step = state.workflow.payment_deposited
    step.mark_completed(now)
    step.transaction_id = cmd.transaction_id
    step.payment_method = cmd.payment_method
    _system_message(state, cmd.user_id, f"Payment deposited into escrow (txn {cmd.transaction_id})", now)
    return ("payment_deposited",)


def _sign_contract(state: DealState, cmd: SignContract, now: datetime) -> _Events | _Unchanged:
    role = require_eligible(state, cmd.user_id, DealAction.SIGN_CONTRACT)
    step = state.workflow.contract_signed
    if step.signed(role):
        return UNCHANGED
    if role == PartyRole.BUYER:
        step.buyer_signed = True
    else:
        step.seller_signed = True
    _system_message(state, cmd.user_id, f"{role.capitalize()} signed the contract", now)

    if step.buyer_signed and step.seller_signed:
        step.contract_hash = contract_hash(state)
        step.mark_completed(now)
        return ("contract_signed",)
    return ()


def _mark_shipped(state: DealState, cmd: MarkShipped, now: datetime) -> _Events:
    role = _require_party(state, cmd.user_id)
    status = state.status
    if status != DealStatus.FUNDS_DEPOSITED:
        raise InvalidStateError(status, "mark shipped")
    if role != PartyRole.SELLER:
        raise AuthorizationError("Only the seller can mark the item as shipped")
    state.workflow.item_delivered.shipped_at = now
    _system_message(state, cmd.user_id, "Seller marked the item as shipped", now)
    return ("item_shipped",)


def _mark_delivered(state: DealState, cmd: MarkDelivered, now: datetime) -> _Events:
    require_eligible(state, cmd.user_id, DealAction.MARK_DELIVERED)
    step = state.workflow.item_delivered
    step.mark_completed(now)
    step.delivered_by = cmd.user_id
    step.delivery_proof = cmd.delivery_proof
    _system_message(state, cmd.user_id, "Seller marked the item as delivered", now)
    return ("item_delivered",)


def _confirm_receipt(state: DealState, cmd: ConfirmReceipt, now: datetime) -> _Events:
    require_eligible(state, cmd.user_id, DealAction.CONFIRM_RECEIPT)
    if cmd.rating is not None and not 1 <= cmd.rating <= 5:
        raise ValidationError.for_field("rating", "Rating must be between 1 and 5")
    step = state.workflow.funds_released
    step.mark_completed(now)
    step.confirmed_by = cmd.user_id
    step.rating = cmd.rating
    step.feedback = cmd.feedback
    step.transaction_id = cmd.transaction_id
    state.completed_at = now
    _system_message(state, cmd.user_id, "Buyer confirmed receipt. Funds released to seller.", now)
    return ("receipt_confirmed",)


def _raise_dispute(state: DealState, cmd: RaiseDispute, now: datetime) -> _Events:
    role = require_eligible(state, cmd.user_id, DealAction.RAISE_DISPUTE)
    reason = (cmd.reason or "").strip()
    if not reason:
        raise ValidationError.for_field("reason", "Dispute reason is required")
    state.dispute = Dispute(
        raised_by=cmd.user_id,
        raised_at=now,
        reason=reason,
        description=cmd.description,
    )
    state.closure = DealClosure.DISPUTED
    _system_message(state, cmd.user_id, f"Dispute raised by {role.capitalize()}: {reason}", now)
    return ("dispute_raised",)


def _require_disputed(state: DealState, attempted: str) -> Dispute:
    status = state.status
    if status != DealStatus.DISPUTED or state.dispute is None:
        raise InvalidStateError(status, attempted)
    return state.dispute


def _assign_dispute(state: DealState, cmd: AssignDispute, now: datetime) -> _Events:
    dispute = _require_disputed(state, "assign dispute")
    dispute.status = DisputeStatus.INVESTIGATING
    dispute.assigned_to = cmd.admin_id
    return ()


def _resolve_dispute(state: DealState, cmd: ResolveDispute, now: datetime) -> _Events:
    dispute = _require_disputed(state, "resolve dispute")
    try:
        outcome = DisputeOutcome(cmd.outcome)
    except ValueError:
        raise ValidationError.for_field("outcome", "Outcome must be 'release' or 'refund'") from None

    dispute.status = DisputeStatus.RESOLVED
    dispute.resolution = cmd.resolution
    dispute.resolved_at = now

    if outcome == DisputeOutcome.REFUND:
        state.closure = DealClosure.REFUNDED
        _system_message(state, cmd.admin_id, "Dispute resolved in favour of buyer. Funds refunded.", now)
        return ("dispute_resolved_for_buyer",)

    wf = state.workflow
    if not wf.item_delivered.completed:
        wf.item_delivered.mark_completed(now)
    wf.funds_released.mark_completed(now)
    wf.funds_released.transaction_id = cmd.transaction_id
    state.closure = None
    state.completed_at = now
    _system_message(state, cmd.admin_id, "Dispute resolved in favour of seller. Funds released.", now)
    return ("dispute_resolved_for_seller",)


def _review(state: DealState, cmd: ReviewDeal, now: datetime) -> _Events:
    try:
        action = DealReviewAction(cmd.action)
    except ValueError:
        raise ValidationError.for_field("action", "Action must be approve, flag or investigate") from None
    if cmd.risk_score is not None and not 0 <= cmd.risk_score <= 100:
        raise ValidationError.for_field("risk_score", "Risk score must be between 0 and 100")

    flag = state.flag
    if action == DealReviewAction.APPROVE:
        state.flag = FlagInfo(risk_score=flag.risk_score, risk_factors=flag.risk_factors)
    else:
        flag.flagged = True
        flag.flag_reason = (
            "Under investigation"
            if action == DealReviewAction.INVESTIGATE
            else (cmd.notes or "Admin review required")
        )
        flag.flagged_by = cmd.admin_id
        flag.flagged_at = now

    if cmd.risk_score is not None:
        state.flag.risk_score = cmd.risk_score
    if cmd.risk_factors is not None:
        state.flag.risk_factors = list(cmd.risk_factors)
    return ()


_HANDLERS: dict[type, Callable[..., _Events | _Unchanged]] = {
    AcceptDeal: _accept,
    AddMessage: _add_message,
    CancelDeal: _cancel,
    SyncKyc: _sync_kyc,
    UploadDealDocument: _upload_document,
    DepositPayment: _deposit_payment,
    SignContract: _sign_contract,
    MarkShipped: _mark_shipped,
    MarkDelivered: _mark_delivered,
    ConfirmReceipt: _confirm_receipt,
    RaiseDispute: _raise_dispute,
    AssignDispute: _assign_dispute,
    ResolveDispute: _resolve_dispute,
    ReviewDeal: _review,
}


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------


def apply(state: DealState, command: DealCommand, now: datetime) -> DealState:
    """Apply ``command`` to ``state`` and return the new state.

    Returns ``state`` itself when the command is a no-op (for example a
    repeated acceptance). Raises the handler's domain error, or
    WorkflowInconsistencyError if the handler broke step ordering or fired
    events that disagree with the derived status.
    """
    handler = _HANDLERS.get(type(command))
    if handler is None:
        raise TypeError(f"Unsupported deal command: {type(command).__name__}")

    new_state = copy.deepcopy(state)
    events = handler(new_state, command, now)
    if events is UNCHANGED:
        return state

    expected = str(state.status)
    for event in events:
        expected = validate_transition(expected, event)

    derived = derive_status(new_state.workflow, new_state.closure)
    if derived != expected:
        raise WorkflowInconsistencyError(
            f"{type(command).__name__} fired {list(events)} ending at {expected}, "
            f"but the workflow derives {derived}"
        )
    check_step_order(new_state.workflow)

    new_state.updated_at = now
    return new_state

"""Deal workflow model and its read-only projections.

A deal's lifecycle is recorded as eight ordered workflow steps plus an
optional closure marker (disputed, cancelled, refunded). Everything else
about where a deal stands is computed from those two facts:

    derive_status(workflow, closure)   -> DealStatus
    progress(workflow)                 -> 0..100
    can_perform_action(state, user, a) -> bool
    next_action(state, user)           -> text shown to the caller
    snapshot(state, user)              -> DealView

Nothing in this module touches a database or a clock. Mutations live in
domain/deal_commands.py.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field, fields
from datetime import datetime
from decimal import Decimal
from typing import Any, NamedTuple

from safe_transfer.domain.enums import (
    DealAction,
    DealCategory,
    DealClosure,
    DealDocumentType,
    DealStatus,
    DisputeStatus,
    PartyRole,
    WorkflowStep,
)
from safe_transfer.domain.exceptions import WorkflowInconsistencyError

CANCELLABLE_STATUSES = frozenset(
    {
        DealStatus.CREATED,
        DealStatus.ACCEPTED,
        DealStatus.KYC_PENDING,
        DealStatus.DOCUMENTS_PENDING,
    }
)
DISPUTABLE_STATUSES = frozenset(
    {DealStatus.FUNDS_DEPOSITED, DealStatus.IN_DELIVERY, DealStatus.DELIVERED}
)
TERMINAL_STATUSES = frozenset({DealStatus.COMPLETED, DealStatus.CANCELLED, DealStatus.REFUNDED})
KYC_WAITING_STATUSES = frozenset({DealStatus.ACCEPTED, DealStatus.KYC_PENDING})


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives.

    ``round()`` rounds halves to even, which would report 12.5 % as 12.
    """
    return math.floor(value + 0.5)


# ---------------------------------------------------------------------------
# Required documents
# ---------------------------------------------------------------------------


class RequiredDocument(NamedTuple):
    type: DealDocumentType
    name: str
    required: bool


_OWNERSHIP = DealDocumentType.OWNERSHIP
_AGREEMENT = DealDocumentType.AGREEMENT

REQUIRED_DOCUMENTS: dict[DealCategory, dict[PartyRole, tuple[RequiredDocument, ...]]] = {
    DealCategory.VEHICLE: {
        PartyRole.SELLER: (
            RequiredDocument(_OWNERSHIP, "Vehicle Registration Certificate (RC)", True),
            RequiredDocument(_OWNERSHIP, "Insurance Certificate", True),
            RequiredDocument(_OWNERSHIP, "Pollution Certificate", False),
            RequiredDocument(_OWNERSHIP, "Service Records", False),
        ),
    },
    DealCategory.REAL_ESTATE: {
        PartyRole.SELLER: (
            RequiredDocument(_OWNERSHIP, "Property Title Deed", True),
            RequiredDocument(_OWNERSHIP, "Property Tax Receipt", True),
            RequiredDocument(_OWNERSHIP, "NOC from Society/Builder", False),
            RequiredDocument(_OWNERSHIP, "Encumbrance Certificate", True),
        ),
    },
    DealCategory.DOMAIN: {
        PartyRole.SELLER: (
            RequiredDocument(_OWNERSHIP, "Domain Ownership Certificate", True),
            RequiredDocument(_OWNERSHIP, "Domain Transfer Authorization", True),
        ),
    },
    DealCategory.FREELANCING: {
        PartyRole.SELLER: (
            RequiredDocument(_AGREEMENT, "Work Portfolio/Samples", True),
            RequiredDocument(_AGREEMENT, "Project Specification Document", True),
        ),
        PartyRole.BUYER: (
            RequiredDocument(_AGREEMENT, "Project Requirements Document", True),
        ),
    },
    DealCategory.OTHER: {
        PartyRole.SELLER: (
            RequiredDocument(_OWNERSHIP, "Proof of Ownership", True),
            RequiredDocument(DealDocumentType.OTHER, "Item Description/Specification", True),
        ),
    },
}


def required_documents(category: str, role: PartyRole) -> tuple[RequiredDocument, ...]:
    """Documents listed for ``role`` in a deal of ``category``."""
    by_role = REQUIRED_DOCUMENTS.get(DealCategory(category), REQUIRED_DOCUMENTS[DealCategory.OTHER])
    return by_role.get(role, ())


def required_document_types(category: str, role: PartyRole) -> list[str]:
    """Distinct document types ``role`` must upload, in listing order."""
    types: list[str] = []
    for doc in required_documents(category, role):
        if doc.required and doc.type.value not in types:
            types.append(doc.type.value)
    return types


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, list):
        return [_encode(v) for v in value]
    return value


class _Record:
    """JSON-column round-tripping for flat dataclasses.

    Fields annotated with ``datetime`` are stored as ISO-8601 strings; all
    other fields must already be JSON-compatible.
    """

    def to_dict(self) -> dict[str, Any]:
        return {f.name: _encode(getattr(self, f.name)) for f in fields(self)}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None):
        data = data or {}
        kwargs: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            value = data[f.name]
            if value is not None and "datetime" in str(f.type):
                value = datetime.fromisoformat(value)
            elif isinstance(value, list):
                value = list(value)
            kwargs[f.name] = value
        return cls(**kwargs)


@dataclass
class _Step(_Record):
    completed: bool = False
    completed_at: datetime | None = None

    def mark_completed(self, now: datetime) -> None:
        self.completed = True
        self.completed_at = now


@dataclass
class DealCreatedStep(_Step):
    completed_by: str | None = None


@dataclass
class PartiesAcceptedStep(_Step):
    buyer_accepted: bool = False
    seller_accepted: bool = False
    buyer_accepted_at: datetime | None = None
    seller_accepted_at: datetime | None = None

    def accepted(self, role: PartyRole) -> bool:
        return self.buyer_accepted if role == PartyRole.BUYER else self.seller_accepted


@dataclass
class KycVerifiedStep(_Step):
    buyer_kyc: bool = False
    seller_kyc: bool = False


@dataclass
class DocumentsUploadedStep(_Step):
    buyer_docs: bool = False
    seller_docs: bool = False
    buyer_required_docs: list[str] = field(default_factory=list)
    seller_required_docs: list[str] = field(default_factory=list)
    buyer_uploaded_docs: list[str] = field(default_factory=list)
    seller_uploaded_docs: list[str] = field(default_factory=list)

    def required_for(self, role: PartyRole) -> list[str]:
        return self.buyer_required_docs if role == PartyRole.BUYER else self.seller_required_docs

    def uploaded_by(self, role: PartyRole) -> list[str]:
        return self.buyer_uploaded_docs if role == PartyRole.BUYER else self.seller_uploaded_docs

    def side_complete(self, role: PartyRole) -> bool:
        """A side with no required types is complete from the start."""
        uploaded = self.uploaded_by(role)
        return all(doc_type in uploaded for doc_type in self.required_for(role))


@dataclass
class PaymentDepositedStep(_Step):
    transaction_id: str | None = None
    payment_method: str | None = None


@dataclass
class ContractSignedStep(_Step):
    buyer_signed: bool = False
    seller_signed: bool = False
    contract_hash: str | None = None

    def signed(self, role: PartyRole) -> bool:
        return self.buyer_signed if role == PartyRole.BUYER else self.seller_signed


@dataclass
class ItemDeliveredStep(_Step):
    shipped_at: datetime | None = None
    delivered_by: str | None = None
    delivery_proof: str | None = None


@dataclass
class FundsReleasedStep(_Step):
    confirmed_by: str | None = None
    rating: int | None = None
    feedback: str | None = None
    transaction_id: str | None = None


_STEP_TYPES: dict[WorkflowStep, type[_Step]] = {
    WorkflowStep.DEAL_CREATED: DealCreatedStep,
    WorkflowStep.PARTIES_ACCEPTED: PartiesAcceptedStep,
    WorkflowStep.KYC_VERIFIED: KycVerifiedStep,
    WorkflowStep.DOCUMENTS_UPLOADED: DocumentsUploadedStep,
    WorkflowStep.PAYMENT_DEPOSITED: PaymentDepositedStep,
    WorkflowStep.CONTRACT_SIGNED: ContractSignedStep,
    WorkflowStep.ITEM_DELIVERED: ItemDeliveredStep,
    WorkflowStep.FUNDS_RELEASED: FundsReleasedStep,
}


@dataclass
class Workflow:
    """The eight workflow steps. Attribute names match ``WorkflowStep`` values."""

    deal_created: DealCreatedStep = field(default_factory=DealCreatedStep)
    parties_accepted: PartiesAcceptedStep = field(default_factory=PartiesAcceptedStep)
    kyc_verified: KycVerifiedStep = field(default_factory=KycVerifiedStep)
    documents_uploaded: DocumentsUploadedStep = field(default_factory=DocumentsUploadedStep)
    payment_deposited: PaymentDepositedStep = field(default_factory=PaymentDepositedStep)
    contract_signed: ContractSignedStep = field(default_factory=ContractSignedStep)
    item_delivered: ItemDeliveredStep = field(default_factory=ItemDeliveredStep)
    funds_released: FundsReleasedStep = field(default_factory=FundsReleasedStep)

    def steps(self) -> list[tuple[WorkflowStep, _Step]]:
        return [(step, getattr(self, step.value)) for step in WorkflowStep]

    def completed_count(self) -> int:
        return sum(1 for _, step in self.steps() if step.completed)

    def to_dict(self) -> dict[str, Any]:
        return {name.value: step.to_dict() for name, step in self.steps()}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Workflow:
        data = data or {}
        return cls(
            **{name.value: step_type.from_dict(data.get(name.value)) for name, step_type in _STEP_TYPES.items()}
        )


@dataclass
class DealTerms:
    """Commercial terms, fixed at creation."""

    title: str
    description: str
    category: str
    amount: Decimal
    escrow_fee: Decimal
    escrow_fee_percentage: Decimal
    delivery_method: str
    inspection_period: int
    subcategory: str | None = None
    currency: str = "INR"
    additional_terms: str | None = None

    def canonical(self) -> dict[str, Any]:
        """Key-sorted, string-valued view used for the contract hash."""
        return {f.name: _encode(getattr(self, f.name)) for f in sorted(fields(self), key=lambda f: f.name)}


@dataclass
class Message(_Record):
    sender_id: str
    text: str
    timestamp: datetime
    is_system: bool = False


@dataclass
class DealDocument(_Record):
    uploaded_by: str
    document_type: str
    filename: str
    url: str
    uploaded_at: datetime
    file_size: int | None = None
    mime_type: str | None = None
    verified: bool = False
    verified_by: str | None = None
    verified_at: datetime | None = None


@dataclass
class Dispute(_Record):
    raised_by: str
    raised_at: datetime
    reason: str
    description: str | None = None
    is_disputed: bool = True
    status: str = DisputeStatus.OPEN
    assigned_to: str | None = None
    resolution: str | None = None
    resolved_at: datetime | None = None


@dataclass
class FlagInfo(_Record):
    flagged: bool = False
    flag_reason: str | None = None
    flagged_by: str | None = None
    flagged_at: datetime | None = None
    risk_score: int = 0
    risk_factors: list[str] = field(default_factory=list)


@dataclass
class DealState:
    """Everything the workflow engine knows about one deal."""

    id: str
    deal_id: str
    buyer_id: str
    seller_id: str
    initiator_id: str
    terms: DealTerms
    workflow: Workflow = field(default_factory=Workflow)
    closure: DealClosure | None = None
    messages: list[Message] = field(default_factory=list)
    documents: list[DealDocument] = field(default_factory=list)
    dispute: Dispute | None = None
    flag: FlagInfo = field(default_factory=FlagInfo)
    created_at: datetime | None = None
    accepted_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def status(self) -> DealStatus:
        return derive_status(self.workflow, self.closure)

    def role_of(self, user_id: str) -> PartyRole | None:
        if user_id == self.buyer_id:
            return PartyRole.BUYER
        if user_id == self.seller_id:
            return PartyRole.SELLER
        return None

    def party_id(self, role: PartyRole) -> str:
        return self.buyer_id if role == PartyRole.BUYER else self.seller_id

    def counterparty_id(self, user_id: str) -> str | None:
        role = self.role_of(user_id)
        if role is None:
            return None
        return self.seller_id if role == PartyRole.BUYER else self.buyer_id


# ---------------------------------------------------------------------------
# Projections
# ---------------------------------------------------------------------------


def derive_status(workflow: Workflow, closure: DealClosure | str | None) -> DealStatus:
    """Map workflow completion plus closure onto the coarse status."""
    if closure:
        return DealStatus(closure)

    kyc = workflow.kyc_verified
    if not workflow.parties_accepted.completed:
        return DealStatus.CREATED
    if not kyc.completed:
        return DealStatus.KYC_PENDING if (kyc.buyer_kyc or kyc.seller_kyc) else DealStatus.ACCEPTED
    if not workflow.documents_uploaded.completed:
        return DealStatus.DOCUMENTS_PENDING
    if not workflow.payment_deposited.completed:
        return DealStatus.PAYMENT_PENDING
    if not workflow.contract_signed.completed:
        return DealStatus.CONTRACT_PENDING
    if not workflow.item_delivered.completed:
        if workflow.item_delivered.shipped_at is not None:
            return DealStatus.IN_DELIVERY
        return DealStatus.FUNDS_DEPOSITED
    if not workflow.funds_released.completed:
        return DealStatus.DELIVERED
    return DealStatus.COMPLETED


def check_step_order(workflow: Workflow) -> None:
    """Raise if any step is completed while an earlier one is not."""
    seen_incomplete: WorkflowStep | None = None
    for name, step in workflow.steps():
        if not step.completed:
            seen_incomplete = seen_incomplete or name
        elif seen_incomplete is not None:
            raise WorkflowInconsistencyError(
                f"Step {name.value} is completed but earlier step {seen_incomplete.value} is not"
            )


def progress(workflow: Workflow) -> int:
    """Percentage of workflow steps completed, 0..100."""
    return round_half_up(100 * workflow.completed_count() / len(WorkflowStep))


def can_perform_action(state: DealState, user_id: str, action: DealAction | str) -> bool:
    role = state.role_of(user_id)
    if role is None:
        return False

    status = state.status
    action = DealAction(action)
    if action == DealAction.ACCEPT_DEAL:
        return status == DealStatus.CREATED and user_id != state.initiator_id
    if action == DealAction.DEPOSIT_PAYMENT:
        return status == DealStatus.PAYMENT_PENDING and role == PartyRole.BUYER
    if action == DealAction.SIGN_CONTRACT:
        return status == DealStatus.CONTRACT_PENDING
    if action == DealAction.MARK_DELIVERED:
        return status in (DealStatus.FUNDS_DEPOSITED, DealStatus.IN_DELIVERY) and role == PartyRole.SELLER
    if action == DealAction.CONFIRM_RECEIPT:
        return status == DealStatus.DELIVERED and role == PartyRole.BUYER
    if action == DealAction.RAISE_DISPUTE:
        return status in DISPUTABLE_STATUSES
    return False


def _document_action(state: DealState, role: PartyRole) -> str:
    docs = state.workflow.documents_uploaded
    counterparty = PartyRole.SELLER if role == PartyRole.BUYER else PartyRole.BUYER
    uploaded = docs.uploaded_by(role)

    if not docs.side_complete(role):
        missing = [
            doc.name
            for doc in required_documents(state.terms.category, role)
            if doc.required and doc.type.value not in uploaded
        ]
        text = f"Upload required documents: {', '.join(missing[:2])}"
        if len(missing) > 2:
            text += f" and {len(missing) - 2} more"
        return text

    if not docs.side_complete(counterparty):
        return "Waiting for counterparty documents"
    if role == PartyRole.BUYER:
        return "Proceed to payment deposit"
    return "Waiting for buyer to deposit payment"


def next_action(state: DealState, user_id: str) -> str:
    """Human-readable next step for ``user_id``. Never empty."""
    role = state.role_of(user_id)
    if role is None:
        return "Not authorized for this deal"

    is_buyer = role == PartyRole.BUYER
    status = state.status
    wf = state.workflow

    if status == DealStatus.CREATED:
        if not wf.parties_accepted.accepted(role):
            return "Accept or reject the deal"
        return "Waiting for seller to accept" if is_buyer else "Waiting for buyer to accept"
    if status in KYC_WAITING_STATUSES:
        if not wf.kyc_verified.seller_kyc:
            if is_buyer:
                return "Waiting for seller KYC verification - Send reminder"
            return "Complete KYC verification (Required for sellers)"
        return _document_action(state, role)
    if status == DealStatus.DOCUMENTS_PENDING:
        return _document_action(state, role)
    if status == DealStatus.PAYMENT_PENDING:
        return "Deposit payment into escrow" if is_buyer else "Waiting for buyer payment"
    if status == DealStatus.CONTRACT_PENDING:
        if not wf.contract_signed.signed(role):
            return "Sign digital contract"
        return "Waiting for counterparty signature"
    if status == DealStatus.FUNDS_DEPOSITED:
        return "Waiting for seller delivery" if is_buyer else "Deliver item/service to buyer"
    if status == DealStatus.IN_DELIVERY:
        return "Waiting for delivery" if is_buyer else "Mark item as delivered"
    if status == DealStatus.DELIVERED:
        return "Inspect and confirm receipt" if is_buyer else "Waiting for buyer confirmation"

    return {
        DealStatus.COMPLETED: "Deal completed successfully",
        DealStatus.DISPUTED: "Dispute in progress",
        DealStatus.CANCELLED: "Deal cancelled",
        DealStatus.REFUNDED: "Funds refunded",
    }[status]


@dataclass
class DealView:
    """A deal as seen by one caller."""

    deal: DealState
    role: PartyRole | None
    next_action: str
    progress: int
    can_accept: bool
    can_deposit: bool
    can_sign: bool
    can_mark_delivered: bool
    can_confirm: bool
    can_dispute: bool

    @property
    def status(self) -> DealStatus:
        return self.deal.status


def snapshot(state: DealState, user_id: str) -> DealView:
    def allowed(action: DealAction) -> bool:
        return can_perform_action(state, user_id, action)

    return DealView(
        deal=state,
        role=state.role_of(user_id),
        next_action=next_action(state, user_id),
        progress=progress(state.workflow),
        can_accept=allowed(DealAction.ACCEPT_DEAL),
        can_deposit=allowed(DealAction.DEPOSIT_PAYMENT),
        can_sign=allowed(DealAction.SIGN_CONTRACT),
        can_mark_delivered=allowed(DealAction.MARK_DELIVERED),
        can_confirm=allowed(DealAction.CONFIRM_RECEIPT),
        can_dispute=allowed(DealAction.RAISE_DISPUTE),
    )

"""Pydantic schemas for the Deal API.

Request bodies only check shape; business validation (length limits,
amount range, phone format, state eligibility) happens in the services so
that every caller gets the same field-tagged ValidationError.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from safe_transfer.domain.deal_workflow import DealView
from safe_transfer.domain.enums import PartyRole
from safe_transfer.services.deal_service import DealDraft

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class CreateDealRequest(BaseModel):
    """Request body for opening a deal.

    ``role`` is the caller's side. The counterparty phone for the other
    side is required: ``seller_phone`` when the caller buys,
    ``buyer_phone`` when the caller sells.
    """

    title: str = Field(..., examples=["Honda City 2019, 32,000 km"])
    description: str = Field(..., examples=["Single owner, full service history, new tyres."])
    category: str = Field(..., examples=["vehicle"])
    subcategory: str | None = None
    amount: Decimal = Field(..., description="Deal amount in INR", examples=[50000])
    delivery_method: str = Field(..., examples=["in_person"])
    inspection_period: int = Field(default=3, description="Days the buyer has to inspect after delivery")
    additional_terms: str | None = None
    role: PartyRole = Field(..., description="The caller's side of the deal")
    buyer_phone: str | None = None
    buyer_name: str | None = None
    seller_phone: str | None = None
    seller_name: str | None = None

    def to_draft(self) -> DealDraft:
        if self.role == PartyRole.BUYER:
            phone, name = self.seller_phone, self.seller_name
        else:
            phone, name = self.buyer_phone, self.buyer_name
        return DealDraft(
            title=self.title,
            description=self.description,
            category=self.category,
            subcategory=self.subcategory,
            amount=self.amount,
            delivery_method=self.delivery_method,
            inspection_period=self.inspection_period,
            additional_terms=self.additional_terms,
            role=self.role.value,
            counterparty_phone=phone,
            counterparty_name=name,
        )


class MessageRequest(BaseModel):
    text: str = Field(..., description="1 to 1000 characters")


class CancelDealRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class DepositPaymentRequest(BaseModel):
    payment_method: str = Field(..., examples=["upi"])


class MarkDeliveredRequest(BaseModel):
    delivery_proof: str | None = Field(default=None, description="Tracking number or proof URL")


class ConfirmReceiptRequest(BaseModel):
    rating: int | None = Field(default=None, description="1 to 5")
    feedback: str | None = Field(default=None, max_length=1000)


class RaiseDisputeRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)
    description: str | None = Field(default=None, max_length=2000)


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    sender_id: str
    text: str
    timestamp: datetime
    is_system: bool


class DealDocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    uploaded_by: str
    document_type: str
    filename: str
    url: str
    uploaded_at: datetime
    file_size: int | None
    mime_type: str | None
    verified: bool


class DisputeResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    raised_by: str
    raised_at: datetime
    reason: str
    description: str | None
    status: str
    assigned_to: str | None
    resolution: str | None
    resolved_at: datetime | None


class FlagResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    flagged: bool
    flag_reason: str | None
    flagged_by: str | None
    flagged_at: datetime | None
    risk_score: int
    risk_factors: list[str]


class DealResponse(BaseModel):
    """A deal as seen by the caller, with their next step and permissions."""

    id: str
    deal_id: str = Field(description="Human-readable deal number, ST followed by six digits")
    title: str
    description: str
    category: str
    subcategory: str | None
    amount: Decimal
    currency: str
    escrow_fee: Decimal
    escrow_fee_percentage: Decimal
    delivery_method: str
    inspection_period: int
    additional_terms: str | None
    buyer_id: str
    seller_id: str
    initiator_id: str
    status: str
    workflow: dict[str, Any]
    messages: list[MessageResponse]
    documents: list[DealDocumentResponse]
    dispute: DisputeResponse | None
    flag: FlagResponse
    created_at: datetime | None
    accepted_at: datetime | None
    completed_at: datetime | None
    updated_at: datetime | None

    role: str | None = Field(description="buyer, seller, or null for an admin viewer")
    next_action: str
    progress: int = Field(description="Percentage of workflow steps completed")
    can_accept: bool
    can_deposit: bool
    can_sign: bool
    can_mark_delivered: bool
    can_confirm: bool
    can_dispute: bool

    @classmethod
    def from_view(cls, view: DealView) -> DealResponse:
        deal = view.deal
        terms = deal.terms
        return cls(
            id=deal.id,
            deal_id=deal.deal_id,
            title=terms.title,
            description=terms.description,
            category=terms.category,
            subcategory=terms.subcategory,
            amount=terms.amount,
            currency=terms.currency,
            escrow_fee=terms.escrow_fee,
            escrow_fee_percentage=terms.escrow_fee_percentage,
            delivery_method=terms.delivery_method,
            inspection_period=terms.inspection_period,
            additional_terms=terms.additional_terms,
            buyer_id=deal.buyer_id,
            seller_id=deal.seller_id,
            initiator_id=deal.initiator_id,
            status=deal.status.value,
            workflow=deal.workflow.to_dict(),
            messages=[MessageResponse.model_validate(m) for m in deal.messages],
            documents=[DealDocumentResponse.model_validate(d) for d in deal.documents],
            dispute=DisputeResponse.model_validate(deal.dispute) if deal.dispute else None,
            flag=FlagResponse.model_validate(deal.flag),
            created_at=deal.created_at,
            accepted_at=deal.accepted_at,
            completed_at=deal.completed_at,
            updated_at=deal.updated_at,
            role=view.role.value if view.role else None,
            next_action=view.next_action,
            progress=view.progress,
            can_accept=view.can_accept,
            can_deposit=view.can_deposit,
            can_sign=view.can_sign,
            can_mark_delivered=view.can_mark_delivered,
            can_confirm=view.can_confirm,
            can_dispute=view.can_dispute,
        )


class DealListResponse(BaseModel):
    deals: list[DealResponse]
    total: int
    page: int
    limit: int
    pages: int

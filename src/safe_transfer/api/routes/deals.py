"""Deal REST API routes.

Every route acts on behalf of the caller named by the ``X-User-Id`` header
and returns the deal as that caller sees it (next action, progress and
eligibility flags included).

Routes:
    POST   /api/v1/deals                            - Open a deal
    GET    /api/v1/deals                            - List the caller's deals
    GET    /api/v1/deals/{id}                       - Get one deal
    POST   /api/v1/deals/{id}/accept                - Accept
    POST   /api/v1/deals/{id}/messages              - Post a message
    POST   /api/v1/deals/{id}/cancel                - Cancel
    POST   /api/v1/deals/{id}/documents             - Upload a deal document
    POST   /api/v1/deals/{id}/deposit-payment       - Buyer funds the escrow
    POST   /api/v1/deals/{id}/sign-contract         - Sign the contract
    POST   /api/v1/deals/{id}/ship                  - Seller ships
    POST   /api/v1/deals/{id}/mark-delivered        - Seller marks delivered
    POST   /api/v1/deals/{id}/confirm-receipt       - Buyer confirms, funds released
    POST   /api/v1/deals/{id}/dispute               - Raise a dispute
    POST   /api/v1/deals/{id}/kyc-reminder          - Remind the counterparty about KYC
"""

from __future__ import annotations

import math

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile

from safe_transfer.api.deps import get_current_user_id, get_deal_service
from safe_transfer.logging_config import get_logger
from safe_transfer.schemas.deal import (
    CancelDealRequest,
    ConfirmReceiptRequest,
    CreateDealRequest,
    DealListResponse,
    DealResponse,
    DepositPaymentRequest,
    MarkDeliveredRequest,
    MessageRequest,
    RaiseDisputeRequest,
)
from safe_transfer.services.deal_service import DealService

router = APIRouter(prefix="/api/v1/deals", tags=["Deals"])
logger = get_logger(__name__)


# ---------------------------------------------------------------------------
# Create / read
# ---------------------------------------------------------------------------


@router.post("", response_model=DealResponse, status_code=201, summary="Open a new deal")
async def create_deal(
    request: CreateDealRequest,
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    """Create a deal and invite the counterparty by phone."""
    view = await svc.create_deal(user_id, request.to_draft())
    return DealResponse.from_view(view)


@router.get("", response_model=DealListResponse, summary="List the caller's deals")
async def list_deals(
    status: list[str] | None = Query(default=None, description="Repeat to filter by several statuses"),
    category: str | None = None,
    page: int = 1,
    limit: int = 10,
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealListResponse:
    views, total = await svc.list_deals(user_id, status, category, page, limit)
    return DealListResponse(
        deals=[DealResponse.from_view(v) for v in views],
        total=total,
        page=page,
        limit=limit,
        pages=math.ceil(total / limit) if total else 0,
    )


@router.get("/{deal_id}", response_model=DealResponse, summary="Get a deal")
async def get_deal(
    deal_id: str,
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    """``deal_id`` may be the UUID or the ST number."""
    return DealResponse.from_view(await svc.get_deal(deal_id, user_id))


# ---------------------------------------------------------------------------
# Agreement
# ---------------------------------------------------------------------------


@router.post("/{deal_id}/accept", response_model=DealResponse, summary="Accept a deal")
async def accept_deal(
    deal_id: str,
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    return DealResponse.from_view(await svc.accept_deal(deal_id, user_id))


@router.post("/{deal_id}/messages", response_model=DealResponse, summary="Post a message")
async def add_message(
    deal_id: str,
    request: MessageRequest,
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    return DealResponse.from_view(await svc.add_message(deal_id, user_id, request.text))


@router.post("/{deal_id}/cancel", response_model=DealResponse, summary="Cancel a deal")
async def cancel_deal(
    deal_id: str,
    request: CancelDealRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    reason = request.reason if request else None
    return DealResponse.from_view(await svc.cancel_deal(deal_id, user_id, reason))


@router.post("/{deal_id}/kyc-reminder", response_model=DealResponse, summary="Remind the counterparty to finish KYC")
async def send_kyc_reminder(
    deal_id: str,
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    return DealResponse.from_view(await svc.send_kyc_reminder(deal_id, user_id))


# ---------------------------------------------------------------------------
# Documents
# ---------------------------------------------------------------------------


@router.post("/{deal_id}/documents", response_model=DealResponse, summary="Upload a deal document")
async def upload_document(
    deal_id: str,
    document_type: str = Form(...),
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    data = await file.read()
    view = await svc.upload_document(
        deal_id,
        user_id,
        document_type,
        filename=file.filename or "document",
        data=data,
        content_type=file.content_type,
    )
    return DealResponse.from_view(view)


# ---------------------------------------------------------------------------
# Money, contract, delivery
# ---------------------------------------------------------------------------


@router.post("/{deal_id}/deposit-payment", response_model=DealResponse, summary="Deposit funds into escrow")
async def deposit_payment(
    deal_id: str,
    request: DepositPaymentRequest,
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    return DealResponse.from_view(await svc.deposit_payment(deal_id, user_id, request.payment_method))


@router.post("/{deal_id}/sign-contract", response_model=DealResponse, summary="Sign the digital contract")
async def sign_contract(
    deal_id: str,
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    return DealResponse.from_view(await svc.sign_contract(deal_id, user_id))


@router.post("/{deal_id}/ship", response_model=DealResponse, summary="Mark the item as shipped")
async def mark_shipped(
    deal_id: str,
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    return DealResponse.from_view(await svc.mark_shipped(deal_id, user_id))


@router.post("/{deal_id}/mark-delivered", response_model=DealResponse, summary="Mark the item as delivered")
async def mark_delivered(
    deal_id: str,
    request: MarkDeliveredRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    proof = request.delivery_proof if request else None
    return DealResponse.from_view(await svc.mark_delivered(deal_id, user_id, proof))


@router.post("/{deal_id}/confirm-receipt", response_model=DealResponse, summary="Confirm receipt and release funds")
async def confirm_receipt(
    deal_id: str,
    request: ConfirmReceiptRequest | None = None,
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    rating = request.rating if request else None
    feedback = request.feedback if request else None
    return DealResponse.from_view(await svc.confirm_receipt(deal_id, user_id, rating, feedback))


@router.post("/{deal_id}/dispute", response_model=DealResponse, summary="Raise a dispute")
async def raise_dispute(
    deal_id: str,
    request: RaiseDisputeRequest,
    user_id: str = Depends(get_current_user_id),
    svc: DealService = Depends(get_deal_service),
) -> DealResponse:
    view = await svc.raise_dispute(deal_id, user_id, request.reason, request.description)
    return DealResponse.from_view(view)

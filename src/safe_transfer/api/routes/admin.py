"""Admin REST API routes. The caller must be an admin party.

Routes:
    GET    /api/v1/admin/deals/flagged                 - Flagged deals by severity
    POST   /api/v1/admin/deals/{id}/review             - Approve / flag / investigate
    POST   /api/v1/admin/deals/{id}/dispute/assign     - Take a dispute
    POST   /api/v1/admin/deals/{id}/dispute/resolve    - Release or refund
    GET    /api/v1/admin/kyc/reviews                   - KYC records awaiting review
    POST   /api/v1/admin/kyc/{kyc_id}/review           - Approve / reject a KYC record
"""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends

from safe_transfer.api.deps import get_admin_service, get_current_user_id
from safe_transfer.schemas.admin import ResolveDisputeRequest, ReviewDealRequest, ReviewKycRequest
from safe_transfer.schemas.deal import DealResponse
from safe_transfer.schemas.kyc import KycStatusResponse
from safe_transfer.services.admin_service import AdminService

router = APIRouter(prefix="/api/v1/admin", tags=["Admin"])


@router.get("/deals/flagged", response_model=list[DealResponse], summary="List flagged deals")
async def list_flagged_deals(
    severity: Literal["high", "medium", "low"] | None = None,
    admin_id: str = Depends(get_current_user_id),
    svc: AdminService = Depends(get_admin_service),
) -> list[DealResponse]:
    """high: risk >= 70, medium: 40-69, low: below 40."""
    return [DealResponse.from_view(v) for v in await svc.list_flagged_deals(admin_id, severity)]


@router.post("/deals/{deal_id}/review", response_model=DealResponse, summary="Review a deal")
async def review_deal(
    deal_id: str,
    request: ReviewDealRequest,
    admin_id: str = Depends(get_current_user_id),
    svc: AdminService = Depends(get_admin_service),
) -> DealResponse:
    view = await svc.review_deal(
        deal_id,
        admin_id,
        request.action.value,
        notes=request.notes,
        risk_score=request.risk_score,
        risk_factors=request.risk_factors,
    )
    return DealResponse.from_view(view)


@router.post("/deals/{deal_id}/dispute/assign", response_model=DealResponse, summary="Assign a dispute to yourself")
async def assign_dispute(
    deal_id: str,
    admin_id: str = Depends(get_current_user_id),
    svc: AdminService = Depends(get_admin_service),
) -> DealResponse:
    return DealResponse.from_view(await svc.assign_dispute(deal_id, admin_id))


@router.post("/deals/{deal_id}/dispute/resolve", response_model=DealResponse, summary="Resolve a dispute")
async def resolve_dispute(
    deal_id: str,
    request: ResolveDisputeRequest,
    admin_id: str = Depends(get_current_user_id),
    svc: AdminService = Depends(get_admin_service),
) -> DealResponse:
    view = await svc.resolve_dispute(deal_id, admin_id, request.outcome.value, request.resolution)
    return DealResponse.from_view(view)


@router.get("/kyc/reviews", response_model=list[KycStatusResponse], summary="KYC records awaiting review")
async def list_kyc_reviews(
    admin_id: str = Depends(get_current_user_id),
    svc: AdminService = Depends(get_admin_service),
) -> list[KycStatusResponse]:
    return [KycStatusResponse.from_view(v) for v in await svc.list_kyc_reviews(admin_id)]


@router.post("/kyc/{kyc_id}/review", response_model=KycStatusResponse, summary="Approve or reject a KYC record")
async def review_kyc(
    kyc_id: str,
    request: ReviewKycRequest,
    admin_id: str = Depends(get_current_user_id),
    svc: AdminService = Depends(get_admin_service),
) -> KycStatusResponse:
    view = await svc.review_kyc(kyc_id, admin_id, request.action.value, request.notes)
    return KycStatusResponse.from_view(view)

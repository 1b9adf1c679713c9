"""KYC REST API routes. All act on the caller's own record.

Routes:
    GET    /api/v1/kyc/status          - Record, effective status and completion
    POST   /api/v1/kyc/documents       - Upload one of the nine document slots
    PUT    /api/v1/kyc/personal-info   - Partial personal-info update
    PUT    /api/v1/kyc/business-info   - Partial business-info update
    POST   /api/v1/kyc/submit          - Submit for verification
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, File, Form, UploadFile

from safe_transfer.api.deps import get_client_ip, get_current_user_id, get_kyc_service
from safe_transfer.schemas.kyc import BusinessInfoRequest, KycStatusResponse, PersonalInfoRequest
from safe_transfer.services.kyc_service import KycService

router = APIRouter(prefix="/api/v1/kyc", tags=["KYC"])


@router.get("/status", response_model=KycStatusResponse, summary="Get the caller's KYC status")
async def get_status(
    user_id: str = Depends(get_current_user_id),
    svc: KycService = Depends(get_kyc_service),
) -> KycStatusResponse:
    return KycStatusResponse.from_view(await svc.get_status(user_id))


@router.post("/documents", response_model=KycStatusResponse, summary="Upload a KYC document")
async def upload_document(
    document_type: str = Form(..., description="One of the nine slots, e.g. panCard"),
    file: UploadFile = File(...),
    user_id: str = Depends(get_current_user_id),
    ip_address: str | None = Depends(get_client_ip),
    svc: KycService = Depends(get_kyc_service),
) -> KycStatusResponse:
    data = await file.read()
    view = await svc.upload_document(
        user_id,
        document_type,
        filename=file.filename or "document",
        data=data,
        content_type=file.content_type,
        ip_address=ip_address,
    )
    return KycStatusResponse.from_view(view)


@router.put("/personal-info", response_model=KycStatusResponse, summary="Update personal information")
async def update_personal_info(
    request: PersonalInfoRequest,
    user_id: str = Depends(get_current_user_id),
    ip_address: str | None = Depends(get_client_ip),
    svc: KycService = Depends(get_kyc_service),
) -> KycStatusResponse:
    updates = request.model_dump(exclude_unset=True)
    return KycStatusResponse.from_view(await svc.update_personal_info(user_id, updates, ip_address))


@router.put("/business-info", response_model=KycStatusResponse, summary="Update business information")
async def update_business_info(
    request: BusinessInfoRequest,
    user_id: str = Depends(get_current_user_id),
    ip_address: str | None = Depends(get_client_ip),
    svc: KycService = Depends(get_kyc_service),
) -> KycStatusResponse:
    updates = request.model_dump(exclude_unset=True)
    return KycStatusResponse.from_view(await svc.update_business_info(user_id, updates, ip_address))


@router.post("/submit", response_model=KycStatusResponse, summary="Submit KYC for verification")
async def submit(
    user_id: str = Depends(get_current_user_id),
    ip_address: str | None = Depends(get_client_ip),
    svc: KycService = Depends(get_kyc_service),
) -> KycStatusResponse:
    return KycStatusResponse.from_view(await svc.submit(user_id, ip_address))

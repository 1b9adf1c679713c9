"""Party REST API routes.

Routes:
    POST   /api/v1/parties       - Register (or claim an invited placeholder)
    GET    /api/v1/parties/me    - The caller's party record
"""

from __future__ import annotations

from fastapi import APIRouter, Depends

from safe_transfer.api.deps import get_current_user_id, get_party_service
from safe_transfer.schemas.party import PartyResponse, RegisterPartyRequest
from safe_transfer.services.party_service import PartyService

router = APIRouter(prefix="/api/v1/parties", tags=["Parties"])


@router.post("", response_model=PartyResponse, status_code=201, summary="Register a party")
async def register_party(
    request: RegisterPartyRequest,
    svc: PartyService = Depends(get_party_service),
) -> PartyResponse:
    party = await svc.register(
        phone=request.phone,
        first_name=request.first_name,
        last_name=request.last_name,
        user_type=request.user_type.value,
    )
    return PartyResponse.model_validate(party)


@router.get("/me", response_model=PartyResponse, summary="Get the caller's party record")
async def get_me(
    user_id: str = Depends(get_current_user_id),
    svc: PartyService = Depends(get_party_service),
) -> PartyResponse:
    return PartyResponse.model_validate(await svc.get(user_id))

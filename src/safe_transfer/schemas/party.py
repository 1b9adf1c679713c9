"""Pydantic schemas for party registration."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

from safe_transfer.domain.enums import PartyKind


class RegisterPartyRequest(BaseModel):
    phone: str = Field(
        ...,
        description="10-digit Indian mobile number",
        examples=["9876543210"],
    )
    first_name: str = Field(..., min_length=1, max_length=50)
    last_name: str = Field(default="", max_length=50)
    user_type: PartyKind = Field(
        default=PartyKind.PERSONAL,
        description="Drives the escrow fee schedule for deals this party initiates",
    )


class PartyResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    first_name: str
    last_name: str
    phone: str
    user_type: str
    kyc_status: str
    phone_verified: bool
    is_claimed: bool

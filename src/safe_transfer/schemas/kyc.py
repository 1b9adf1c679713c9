"""Pydantic schemas for the KYC API.

Info updates are partial: routes pass ``model_dump(exclude_unset=True)`` to
the service so that only the fields the caller sent are merged. Format
checks (PAN, Aadhaar, GSTIN, IFSC, pincode) live in domain/kyc.py.
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from safe_transfer.services.kyc_service import KycStatusView

# ---------------------------------------------------------------------------
# Request Schemas
# ---------------------------------------------------------------------------


class AddressIn(BaseModel):
    line1: str | None = Field(default=None, max_length=200)
    line2: str | None = Field(default=None, max_length=200)
    city: str | None = Field(default=None, max_length=100)
    state: str | None = Field(default=None, max_length=100)
    pincode: str | None = None


class BankAccountIn(BaseModel):
    account_number: str | None = Field(default=None, max_length=30)
    ifsc_code: str | None = None
    bank_name: str | None = Field(default=None, max_length=100)
    branch_name: str | None = Field(default=None, max_length=100)
    account_holder_name: str | None = Field(default=None, max_length=100)
    account_type: str | None = Field(default=None, max_length=20)


class SignatoryIn(BaseModel):
    name: str | None = Field(default=None, max_length=100)
    designation: str | None = Field(default=None, max_length=100)
    pan_number: str | None = None
    email: str | None = Field(default=None, max_length=200)
    phone: str | None = None


class PersonalInfoRequest(BaseModel):
    pan_number: str | None = Field(default=None, examples=["ABCDE1234F"])
    pan_name: str | None = Field(default=None, max_length=100)
    aadhaar_number: str | None = Field(default=None, examples=["1234 5678 9012"])
    aadhaar_name: str | None = Field(default=None, max_length=100)
    current_address: AddressIn | None = None
    bank_account: BankAccountIn | None = None


class BusinessInfoRequest(BaseModel):
    business_name: str | None = Field(default=None, max_length=200)
    business_type: str | None = Field(default=None, max_length=50)
    registration_number: str | None = Field(default=None, max_length=50)
    gstin: str | None = Field(default=None, examples=["27ABCDE1234F1Z5"])
    business_address: AddressIn | None = None
    authorized_signatory: SignatoryIn | None = None


# ---------------------------------------------------------------------------
# Response Schemas
# ---------------------------------------------------------------------------


class KycDocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    filename: str
    url: str
    uploaded_at: datetime
    verified: bool


class AuditEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    action: str
    performed_by: str
    timestamp: datetime
    details: str | None


class KycStatusResponse(BaseModel):
    id: str
    user_id: str
    kyc_type: str
    kyc_level: str
    status: str = Field(description="Stored status, or 'expired' once an approval has lapsed")
    completion_percentage: int
    is_complete: bool
    personal_info: dict[str, Any]
    business_info: dict[str, Any]
    documents: dict[str, KycDocumentResponse]
    verification: dict[str, Any]
    audit_trail: list[AuditEntryResponse]

    @classmethod
    def from_view(cls, view: KycStatusView) -> KycStatusResponse:
        record = view.record
        return cls(
            id=record.id,
            user_id=record.user_id,
            kyc_type=str(record.kyc_type),
            kyc_level=str(record.kyc_level),
            status=view.status.value,
            completion_percentage=view.completion_percentage,
            is_complete=view.is_complete,
            personal_info=asdict(record.personal_info),
            business_info=asdict(record.business_info),
            documents={slot: KycDocumentResponse.model_validate(doc) for slot, doc in record.documents.items()},
            verification=record.verification.to_dict(),
            audit_trail=[AuditEntryResponse.model_validate(a) for a in record.audit_trail],
        )

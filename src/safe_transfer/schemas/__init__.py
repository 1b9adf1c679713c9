"""Pydantic API schemas."""

from safe_transfer.schemas.admin import ResolveDisputeRequest, ReviewDealRequest, ReviewKycRequest
from safe_transfer.schemas.common import ErrorResponse, FieldErrorResponse, HealthResponse
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
from safe_transfer.schemas.kyc import BusinessInfoRequest, KycStatusResponse, PersonalInfoRequest
from safe_transfer.schemas.party import PartyResponse, RegisterPartyRequest

__all__ = [
    "BusinessInfoRequest",
    "CancelDealRequest",
    "ConfirmReceiptRequest",
    "CreateDealRequest",
    "DealListResponse",
    "DealResponse",
    "DepositPaymentRequest",
    "ErrorResponse",
    "FieldErrorResponse",
    "HealthResponse",
    "KycStatusResponse",
    "MarkDeliveredRequest",
    "MessageRequest",
    "PartyResponse",
    "PersonalInfoRequest",
    "RaiseDisputeRequest",
    "RegisterPartyRequest",
    "ResolveDisputeRequest",
    "ReviewDealRequest",
    "ReviewKycRequest",
]

"""Application services: use case orchestration."""

from safe_transfer.services.admin_service import AdminService
from safe_transfer.services.deal_service import DealDraft, DealService
from safe_transfer.services.kyc_service import KycService, KycStatusView
from safe_transfer.services.notification_service import NotificationService
from safe_transfer.services.party_service import PartyService
from safe_transfer.services.payment_service import PaymentService

__all__ = [
    "AdminService",
    "DealDraft",
    "DealService",
    "KycService",
    "KycStatusView",
    "NotificationService",
    "PartyService",
    "PaymentService",
]

"""Admin Service: review queue for deals, disputes and KYC records.

Every method checks ``is_admin`` first and raises AuthorizationError for
anyone else, then delegates the actual change to DealService or KycService.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from safe_transfer.domain.enums import KycStatus
from safe_transfer.domain.exceptions import AuthorizationError, ValidationError
from safe_transfer.infrastructure.party_directory import SqlPartyDirectory
from safe_transfer.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from safe_transfer.domain.deal_workflow import DealView
    from safe_transfer.services.deal_service import DealService
    from safe_transfer.services.kyc_service import KycService, KycStatusView

logger = get_logger(__name__)

# Inclusive risk-score bands.
SEVERITY_BANDS: dict[str, tuple[int, int]] = {
    "high": (70, 100),
    "medium": (40, 69),
    "low": (0, 39),
}


class AdminService:
    def __init__(self, session: AsyncSession, *, deals: DealService, kyc: KycService) -> None:
        self._parties = SqlPartyDirectory(session)
        self._deals = deals
        self._kyc = kyc

    async def _require_admin(self, user_id: str) -> None:
        if not await self._parties.is_admin(user_id):
            logger.warning("admin.denied", user_id=user_id)
            raise AuthorizationError("Admin access required")

    async def list_flagged_deals(self, admin_id: str, severity: str | None = None) -> list[DealView]:
        """Flagged deals, highest risk first, optionally narrowed to one severity band."""
        await self._require_admin(admin_id)
        if severity is None:
            low, high = 0, 100
        elif severity in SEVERITY_BANDS:
            low, high = SEVERITY_BANDS[severity]
        else:
            raise ValidationError.for_field("severity", "Severity must be high, medium or low")
        return await self._deals.list_flagged(low, high, admin_id)

    async def list_kyc_reviews(self, admin_id: str) -> list[KycStatusView]:
        """KYC records submitted and waiting for a decision."""
        await self._require_admin(admin_id)
        return await self._kyc.list_for_review([KycStatus.IN_PROGRESS.value])

    async def review_kyc(self, kyc_id: str, admin_id: str, action: str, notes: str | None = None) -> KycStatusView:
        await self._require_admin(admin_id)
        return await self._kyc.review(kyc_id, admin_id, action, notes)

    async def review_deal(
        self,
        deal_ref: str,
        admin_id: str,
        action: str,
        notes: str | None = None,
        risk_score: int | None = None,
        risk_factors: list[str] | None = None,
    ) -> DealView:
        await self._require_admin(admin_id)
        return await self._deals.review_deal(deal_ref, admin_id, action, notes, risk_score, risk_factors)

    async def assign_dispute(self, deal_ref: str, admin_id: str) -> DealView:
        await self._require_admin(admin_id)
        return await self._deals.assign_dispute(deal_ref, admin_id)

    async def resolve_dispute(
        self,
        deal_ref: str,
        admin_id: str,
        outcome: str,
        resolution: str | None = None,
    ) -> DealView:
        await self._require_admin(admin_id)
        return await self._deals.resolve_dispute(deal_ref, admin_id, outcome, resolution)

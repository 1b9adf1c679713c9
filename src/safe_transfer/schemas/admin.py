"""Pydantic schemas for the admin review API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from safe_transfer.domain.enums import DealReviewAction, DisputeOutcome, KycReviewAction


class ReviewDealRequest(BaseModel):
    action: DealReviewAction
    notes: str | None = Field(default=None, max_length=1000)
    risk_score: int | None = Field(default=None, description="0 to 100")
    risk_factors: list[str] | None = None


class ReviewKycRequest(BaseModel):
    action: KycReviewAction
    notes: str | None = Field(default=None, max_length=1000)


class ResolveDisputeRequest(BaseModel):
    outcome: DisputeOutcome = Field(description="release pays the seller, refund returns funds to the buyer")
    resolution: str | None = Field(default=None, max_length=2000)

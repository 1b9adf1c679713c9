"""ManualReviewVerifier: leaves every submission for an admin.

The record stays in_progress with its scores computed, and shows up in the
admin KYC review queue until someone approves or rejects it.
"""

from __future__ import annotations

from safe_transfer.domain.kyc import KycRecord
from safe_transfer.domain.verifier_protocol import KycVerificationResult
from safe_transfer.verifiers.auto_approve import score_record


class ManualReviewVerifier:
    async def evaluate(self, record: KycRecord) -> KycVerificationResult:
        return KycVerificationResult(
            approved=False,
            scores=score_record(record),
            details="Submitted for manual review",
        )

"""KYC Verifier Strategy Protocol.

Defines the interface that every KYC verification strategy implements.
This is a Protocol (structural subtyping) so concrete verifiers only need
the right shape.

Concrete implementations live in verifiers/ and are picked by
``VerifierFactory`` from the ``kyc_verifier`` setting.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from safe_transfer.domain.kyc import KycRecord


@dataclass(frozen=True)
class KycVerificationResult:
    """Output from a verifier.

    Attributes:
        approved: True to approve the record immediately. False leaves it
            in_progress for an admin to review.
        scores: Values for the verification score fields
            (document_score, identity_score, address_score, overall_score).
        details: Human-readable explanation, stored in the audit entry.
    """

    approved: bool
    scores: dict[str, int] = field(default_factory=dict)
    details: str = ""


@runtime_checkable
class KycVerifier(Protocol):
    """Protocol that all KYC verifier implementations must satisfy.

    Concrete implementations:
        - verifiers/auto_approve.py   (approve every complete submission)
        - verifiers/manual_review.py  (queue for admin review)
    """

    async def evaluate(self, record: KycRecord) -> KycVerificationResult:
        """Decide what happens to a submitted KYC record.

        Args:
            record: The submitted record. Must not be mutated.

        Returns:
            A KycVerificationResult.
        """
        ...

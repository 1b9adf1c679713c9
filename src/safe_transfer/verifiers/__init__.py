"""KYC verification strategy implementations and factory.

Two strategies:
    - AutoApproveVerifier:   approve on submission, with computed scores
    - ManualReviewVerifier:  queue every submission for admin review

The VerifierFactory creates the verifier named by the ``kyc_verifier``
setting.
"""

from safe_transfer.domain.enums import VerifierType
from safe_transfer.domain.verifier_protocol import KycVerificationResult, KycVerifier
from safe_transfer.verifiers.auto_approve import AutoApproveVerifier
from safe_transfer.verifiers.manual_review import ManualReviewVerifier


class VerifierFactory:
    """Factory that creates a KYC verifier from its type name.

    Usage:
        verifier = VerifierFactory.create("auto_approve")
        result = await verifier.evaluate(record)
    """

    _registry: dict[str, type] = {
        VerifierType.AUTO_APPROVE.value: AutoApproveVerifier,
        VerifierType.MANUAL_REVIEW.value: ManualReviewVerifier,
    }

    @classmethod
    def create(cls, verifier_type: str) -> KycVerifier:
        """Create a verifier instance.

        Raises:
            ValueError: If the type is unknown or empty.
        """
        if not verifier_type:
            raise ValueError(f"A verifier type is required. Valid types: {list(cls._registry.keys())}")

        verifier_class = cls._registry.get(verifier_type)
        if verifier_class is None:
            raise ValueError(
                f"Unknown verifier type: '{verifier_type}'. "
                f"Valid types: {list(cls._registry.keys())}"
            )

        return verifier_class()

    @classmethod
    def get_supported_types(cls) -> list[str]:
        """Return the list of supported verifier type strings."""
        return list(cls._registry.keys())


__all__ = [
    "AutoApproveVerifier",
    "KycVerificationResult",
    "KycVerifier",
    "ManualReviewVerifier",
    "VerifierFactory",
]

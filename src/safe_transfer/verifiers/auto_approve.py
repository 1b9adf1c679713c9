"""AutoApproveVerifier: approves every submission that reached submit().

The KYC service has already checked that PAN, Aadhaar, the PAN card and
the Aadhaar front image are on file, so this strategy only scores the
record:

    document_score  share of the record's checklist documents present
    identity_score  100 when PAN and Aadhaar match their formats
    address_score   100 with address line and proof, 50 with one, else 0
    overall_score   mean of the three, rounded half up

No external services required.
"""

from __future__ import annotations

from safe_transfer.domain.deal_workflow import round_half_up
from safe_transfer.domain.enums import KycDocumentType, KycType
from safe_transfer.domain.kyc import AADHAAR_PATTERN, PAN_PATTERN, KycRecord
from safe_transfer.domain.verifier_protocol import KycVerificationResult
from safe_transfer.logging_config import get_logger

logger = get_logger(__name__)

_PERSONAL_DOCUMENTS = (
    KycDocumentType.PAN_CARD,
    KycDocumentType.AADHAAR_FRONT,
    KycDocumentType.BANK_STATEMENT,
    KycDocumentType.ADDRESS_PROOF,
)
_BUSINESS_DOCUMENTS = (
    KycDocumentType.PAN_CARD,
    KycDocumentType.BUSINESS_REGISTRATION,
    KycDocumentType.GST_CERTIFICATE,
    KycDocumentType.BUSINESS_BANK_STATEMENT,
    KycDocumentType.AUTHORIZED_SIGNATORY_ID,
)


def score_record(record: KycRecord) -> dict[str, int]:
    slots = _BUSINESS_DOCUMENTS if record.kyc_type == KycType.BUSINESS else _PERSONAL_DOCUMENTS
    document_score = round_half_up(100 * sum(record.has_document(s) for s in slots) / len(slots))

    info = record.personal_info
    identity_ok = bool(
        info.pan_number
        and PAN_PATTERN.match(info.pan_number)
        and info.aadhaar_number
        and AADHAAR_PATTERN.match(info.aadhaar_number)
    )
    identity_score = 100 if identity_ok else 0

    address_hits = int(bool(info.current_address.line1)) + int(record.has_document(KycDocumentType.ADDRESS_PROOF))
    address_score = 50 * address_hits

    return {
        "document_score": document_score,
        "identity_score": identity_score,
        "address_score": address_score,
        "overall_score": round_half_up((document_score + identity_score + address_score) / 3),
    }


class AutoApproveVerifier:
    """Approve immediately and fill in the verification scores."""

    async def evaluate(self, record: KycRecord) -> KycVerificationResult:
        scores = score_record(record)
        logger.info("verifier.auto_approve.scored", kyc_id=record.id, **scores)
        return KycVerificationResult(
            approved=True,
            scores=scores,
            details="Automatically approved on submission",
        )

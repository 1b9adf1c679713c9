"""Unit tests for the VerifierFactory and the KYC verifiers."""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from safe_transfer.domain.enums import KycDocumentType
from safe_transfer.domain.kyc import KycDocument, KycRecord, put_document, update_personal_info
from safe_transfer.domain.verifier_protocol import KycVerifier
from safe_transfer.verifiers import AutoApproveVerifier, ManualReviewVerifier, VerifierFactory
from safe_transfer.verifiers.auto_approve import score_record

NOW = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


def submitted_record() -> KycRecord:
    record = KycRecord(id="kyc-1", user_id="user-1")
    update_personal_info(record, {"pan_number": "ABCDE1234F", "aadhaar_number": "123456789012"}, NOW)
    for slot in (KycDocumentType.PAN_CARD, KycDocumentType.AADHAAR_FRONT):
        put_document(record, slot, KycDocument(filename=f"{slot}.jpg", url=f"/u/{slot}.jpg", uploaded_at=NOW), NOW)
    return record


class TestVerifierFactory:
    def test_create_auto_approve(self) -> None:
        verifier = VerifierFactory.create("auto_approve")
        assert isinstance(verifier, AutoApproveVerifier)
        assert isinstance(verifier, KycVerifier)

    def test_create_manual_review(self) -> None:
        assert isinstance(VerifierFactory.create("manual_review"), ManualReviewVerifier)

    def test_unknown_type_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown verifier type"):
            VerifierFactory.create("face_match")

    def test_empty_type_raises(self) -> None:
        with pytest.raises(ValueError, match="verifier type is required"):
            VerifierFactory.create("")

    def test_get_supported_types(self) -> None:
        assert VerifierFactory.get_supported_types() == ["auto_approve", "manual_review"]


class TestScoring:
    def test_minimum_submission(self) -> None:
        scores = score_record(submitted_record())
        assert scores == {
            "document_score": 50,
            "identity_score": 100,
            "address_score": 0,
            "overall_score": 50,
        }

    def test_address_counts_line_and_proof(self) -> None:
        record = submitted_record()
        update_personal_info(record, {"current_address": {"line1": "12 MG Road"}}, NOW)
        assert score_record(record)["address_score"] == 50


class TestVerifiers:
    @pytest.mark.asyncio
    async def test_auto_approve_approves(self) -> None:
        result = await AutoApproveVerifier().evaluate(submitted_record())
        assert result.approved is True
        assert result.scores["identity_score"] == 100

    @pytest.mark.asyncio
    async def test_manual_review_defers(self) -> None:
        record = submitted_record()
        result = await ManualReviewVerifier().evaluate(record)
        assert result.approved is False
        assert result.scores == score_record(record)
        assert record.status == "in_progress"

"""Tests for domain enumerations."""

from __future__ import annotations

from safe_transfer.domain.enums import (
    DealStatus,
    KycDocumentType,
    KycStatus,
    VerifierType,
    WorkflowStep,
)


class TestDealStatus:
    def test_all_statuses_exist(self) -> None:
        expected = {
            "created", "accepted", "kyc_pending", "documents_pending",
            "payment_pending", "contract_pending", "funds_deposited",
            "in_delivery", "delivered", "completed", "disputed",
            "cancelled", "refunded",
        }
        assert {s.value for s in DealStatus} == expected

    def test_status_is_str_enum(self) -> None:
        assert isinstance(DealStatus.CREATED, str)
        assert DealStatus.CREATED == "created"


class TestWorkflowStep:
    def test_eight_steps_in_order(self) -> None:
        assert [s.value for s in WorkflowStep] == [
            "deal_created",
            "parties_accepted",
            "kyc_verified",
            "documents_uploaded",
            "payment_deposited",
            "contract_signed",
            "item_delivered",
            "funds_released",
        ]


class TestKycEnums:
    def test_nine_document_slots(self) -> None:
        assert len(KycDocumentType) == 9
        assert KycDocumentType.PAN_CARD == "panCard"

    def test_expired_is_a_status(self) -> None:
        assert KycStatus.EXPIRED == "expired"


class TestVerifierType:
    def test_verifier_types(self) -> None:
        assert VerifierType.AUTO_APPROVE == "auto_approve"
        assert VerifierType.MANUAL_REVIEW == "manual_review"

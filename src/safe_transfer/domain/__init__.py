"""Domain layer: pure business logic with zero framework dependencies."""

from safe_transfer.domain.deal_commands import apply
from safe_transfer.domain.deal_workflow import (
    DealState,
    DealView,
    Workflow,
    can_perform_action,
    derive_status,
    next_action,
    progress,
    snapshot,
)
from safe_transfer.domain.enums import (
    DealAction,
    DealStatus,
    KycDocumentType,
    KycStatus,
    PartyRole,
    VerifierType,
    WorkflowStep,
)
from safe_transfer.domain.exceptions import (
    AuthorizationError,
    InvalidStateError,
    NotFoundError,
    PreconditionError,
    SafeTransferError,
    ValidationError,
)
from safe_transfer.domain.fees import FeeBreakdown, calculate_escrow_fee
from safe_transfer.domain.state_machine import DealStateMachine, validate_transition
from safe_transfer.domain.verifier_protocol import KycVerificationResult, KycVerifier

__all__ = [
    "apply",
    "DealState",
    "DealView",
    "Workflow",
    "can_perform_action",
    "derive_status",
    "next_action",
    "progress",
    "snapshot",
    "DealAction",
    "DealStatus",
    "KycDocumentType",
    "KycStatus",
    "PartyRole",
    "VerifierType",
    "WorkflowStep",
    "AuthorizationError",
    "InvalidStateError",
    "NotFoundError",
    "PreconditionError",
    "SafeTransferError",
    "ValidationError",
    "FeeBreakdown",
    "calculate_escrow_fee",
    "DealStateMachine",
    "validate_transition",
    "KycVerificationResult",
    "KycVerifier",
]

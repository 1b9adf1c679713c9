"""Domain enumerations for Safe Transfer.

These enums define the canonical states and types used throughout the system.
They are framework-agnostic (no SQLAlchemy, no FastAPI imports).
"""

import enum


class DealStatus(enum.StrEnum):
    """Coarse lifecycle phase of a deal.

    The status is never stored independently: it is derived from the workflow
    steps and the closure marker by ``derive_status`` in domain/deal_workflow.py.
    Legal changes between phases are enforced by the DealStateMachine guard.
    """

    CREATED = "created"
    ACCEPTED = "accepted"
    KYC_PENDING = "kyc_pending"
    DOCUMENTS_PENDING = "documents_pending"
    PAYMENT_PENDING = "payment_pending"
    CONTRACT_PENDING = "contract_pending"
    FUNDS_DEPOSITED = "funds_deposited"
    IN_DELIVERY = "in_delivery"
    DELIVERED = "delivered"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class DealClosure(enum.StrEnum):
    """Side branches that take a deal off the main lifecycle."""

    DISPUTED = "disputed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class WorkflowStep(enum.StrEnum):
    """The eight workflow milestones, in their fixed order."""

    DEAL_CREATED = "deal_created"
    PARTIES_ACCEPTED = "parties_accepted"
    KYC_VERIFIED = "kyc_verified"
    DOCUMENTS_UPLOADED = "documents_uploaded"
    PAYMENT_DEPOSITED = "payment_deposited"
    CONTRACT_SIGNED = "contract_signed"
    ITEM_DELIVERED = "item_delivered"
    FUNDS_RELEASED = "funds_released"


class DealAction(enum.StrEnum):
    """Party actions gated by ``can_perform_action``."""

    ACCEPT_DEAL = "accept_deal"
    DEPOSIT_PAYMENT = "deposit_payment"
    SIGN_CONTRACT = "sign_contract"
    MARK_DELIVERED = "mark_delivered"
    CONFIRM_RECEIPT = "confirm_receipt"
    RAISE_DISPUTE = "raise_dispute"


class PartyRole(enum.StrEnum):
    BUYER = "buyer"
    SELLER = "seller"


class PartyKind(enum.StrEnum):
    """Account type of a party; drives the escrow fee schedule."""

    PERSONAL = "personal"
    BUSINESS = "business"


class DealCategory(enum.StrEnum):
    VEHICLE = "vehicle"
    REAL_ESTATE = "real_estate"
    DOMAIN = "domain"
    FREELANCING = "freelancing"
    OTHER = "other"


class DeliveryMethod(enum.StrEnum):
    IN_PERSON = "in_person"
    COURIER = "courier"
    DIGITAL = "digital"
    OTHER = "other"


class DealDocumentType(enum.StrEnum):
    OWNERSHIP = "ownership"
    IDENTITY = "identity"
    AGREEMENT = "agreement"
    DELIVERY_PROOF = "delivery_proof"
    OTHER = "other"


class DisputeStatus(enum.StrEnum):
    OPEN = "open"
    INVESTIGATING = "investigating"
    RESOLVED = "resolved"
    ESCALATED = "escalated"


class DisputeOutcome(enum.StrEnum):
    """How an admin settles a dispute: pay the seller or refund the buyer."""

    RELEASE = "release"
    REFUND = "refund"


class DealReviewAction(enum.StrEnum):
    APPROVE = "approve"
    FLAG = "flag"
    INVESTIGATE = "investigate"


class KycStatus(enum.StrEnum):
    """Lifecycle of a KYC record.

    EXPIRED is never written; it is read from an approved record whose
    expiry date has passed.
    """

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    EXPIRED = "expired"


class KycType(enum.StrEnum):
    PERSONAL = "personal"
    BUSINESS = "business"


class KycLevel(enum.StrEnum):
    BASIC = "basic"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class KycDocumentType(enum.StrEnum):
    """The nine fixed KYC document slots."""

    PAN_CARD = "panCard"
    AADHAAR_FRONT = "aadhaarFront"
    AADHAAR_BACK = "aadhaarBack"
    BANK_STATEMENT = "bankStatement"
    ADDRESS_PROOF = "addressProof"
    BUSINESS_REGISTRATION = "businessRegistration"
    GST_CERTIFICATE = "gstCertificate"
    BUSINESS_BANK_STATEMENT = "businessBankStatement"
    AUTHORIZED_SIGNATORY_ID = "authorizedSignatoryId"


class KycReviewAction(enum.StrEnum):
    APPROVE = "approve"
    REJECT = "reject"


class VerifierType(enum.StrEnum):
    """KYC verification strategies available.

    Selected with the ``kyc_verifier`` setting.
    """

    AUTO_APPROVE = "auto_approve"
    MANUAL_REVIEW = "manual_review"


class PaymentMethod(enum.StrEnum):
    """How the buyer funds the escrow; drives the gateway fee."""

    UPI = "upi"
    NETBANKING = "netbanking"
    DEBIT_CARD = "debit_card"
    CREDIT_CARD = "credit_card"
    WALLET = "wallet"
    OTHER = "other"

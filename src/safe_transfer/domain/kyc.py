"""KYC record model, validation rules and status changes.

A KYC record belongs to exactly one user. It moves
pending -> in_progress -> approved | rejected; an approved record whose
expiry date has passed reads as expired (see ``effective_status``), the
stored status never says so.

Functions here mutate the record in place and never append audit
entries; the KYC service appends exactly one entry per successful call.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timedelta
from typing import Any

from safe_transfer.domain.deal_workflow import round_half_up
from safe_transfer.domain.enums import KycDocumentType, KycLevel, KycStatus, KycType
from safe_transfer.domain.exceptions import ValidationError

PAN_PATTERN = re.compile(r"^[A-Z]{5}[0-9]{4}[A-Z]$")
AADHAAR_PATTERN = re.compile(r"^[0-9]{12}$")
GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")
IFSC_PATTERN = re.compile(r"^[A-Z]{4}0[A-Z0-9]{6}$")
PINCODE_PATTERN = re.compile(r"^[1-9][0-9]{5}$")

DEFAULT_VALIDITY_DAYS = 2 * 365

SUBMISSION_REQUIREMENTS = ("pan_number", "aadhaar_number", "panCard", "aadhaarFront")


# ---------------------------------------------------------------------------
# Nested info blocks
# ---------------------------------------------------------------------------


def _from_mapping(cls, data: dict[str, Any] | None):
    names = {f.name for f in fields(cls)}
    return cls(**{k: v for k, v in (data or {}).items() if k in names})


@dataclass
class Address:
    line1: str | None = None
    line2: str | None = None
    city: str | None = None
    state: str | None = None
    pincode: str | None = None


@dataclass
class BankAccount:
    account_number: str | None = None
    ifsc_code: str | None = None
    bank_name: str | None = None
    branch_name: str | None = None
    account_holder_name: str | None = None
    account_type: str | None = None


@dataclass
class Signatory:
    name: str | None = None
    designation: str | None = None
    pan_number: str | None = None
    email: str | None = None
    phone: str | None = None


@dataclass
class PersonalInfo:
    pan_number: str | None = None
    pan_name: str | None = None
    aadhaar_number: str | None = None
    aadhaar_name: str | None = None
    current_address: Address = field(default_factory=Address)
    bank_account: BankAccount = field(default_factory=BankAccount)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> PersonalInfo:
        data = dict(data or {})
        info = _from_mapping(cls, {k: v for k, v in data.items() if k not in ("current_address", "bank_account")})
        info.current_address = _from_mapping(Address, data.get("current_address"))
        info.bank_account = _from_mapping(BankAccount, data.get("bank_account"))
        return info


@dataclass
class BusinessInfo:
    business_name: str | None = None
    business_type: str | None = None
    registration_number: str | None = None
    gstin: str | None = None
    business_address: Address = field(default_factory=Address)
    authorized_signatory: Signatory = field(default_factory=Signatory)

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> BusinessInfo:
        data = dict(data or {})
        nested = ("business_address", "authorized_signatory")
        info = _from_mapping(cls, {k: v for k, v in data.items() if k not in nested})
        info.business_address = _from_mapping(Address, data.get("business_address"))
        info.authorized_signatory = _from_mapping(Signatory, data.get("authorized_signatory"))
        return info


_NESTED_BLOCKS = {
    "current_address": Address,
    "bank_account": BankAccount,
    "business_address": Address,
    "authorized_signatory": Signatory,
}


def _merge(target: Any, updates: dict[str, Any]) -> None:
    """Copy ``updates`` onto ``target``, merging nested blocks field by field.

    A nested block given as ``None`` is left as it is.
    """
    for key, value in updates.items():
        if key in _NESTED_BLOCKS and value is None:
            continue
        if key in _NESTED_BLOCKS and isinstance(value, dict):
            block = getattr(target, key)
            for sub_key, sub_value in value.items():
                setattr(block, sub_key, sub_value)
        else:
            setattr(target, key, value)


# ---------------------------------------------------------------------------
# Documents, verification, audit
# ---------------------------------------------------------------------------


def _dt(value: Any) -> datetime | None:
    return datetime.fromisoformat(value) if isinstance(value, str) else value


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


@dataclass
class KycDocument:
    filename: str
    url: str
    uploaded_at: datetime
    verified: bool = False
    notes: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {**asdict(self), "uploaded_at": _iso(self.uploaded_at)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> KycDocument:
        return cls(**{**data, "uploaded_at": _dt(data["uploaded_at"])})


@dataclass
class Verification:
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    reviewed_by: str | None = None
    approved_at: datetime | None = None
    approved_by: str | None = None
    rejected_at: datetime | None = None
    rejected_by: str | None = None
    rejection_notes: str | None = None
    expiry_date: datetime | None = None
    document_score: int = 0
    identity_score: int = 0
    address_score: int = 0
    overall_score: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {k: _iso(v) if isinstance(v, datetime) else v for k, v in asdict(self).items()}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> Verification:
        verification = _from_mapping(cls, data)
        for f in fields(cls):
            if f.name.endswith(("_at", "_date")):
                setattr(verification, f.name, _dt(getattr(verification, f.name)))
        return verification


@dataclass
class AuditEntry:
    action: str
    performed_by: str
    timestamp: datetime
    details: str | None = None
    ip_address: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {**asdict(self), "timestamp": _iso(self.timestamp)}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AuditEntry:
        return cls(**{**data, "timestamp": _dt(data["timestamp"])})


@dataclass
class KycRecord:
    id: str
    user_id: str
    kyc_type: str = KycType.PERSONAL
    kyc_level: str = KycLevel.BASIC
    status: str = KycStatus.PENDING
    personal_info: PersonalInfo = field(default_factory=PersonalInfo)
    business_info: BusinessInfo = field(default_factory=BusinessInfo)
    documents: dict[str, KycDocument] = field(default_factory=dict)
    verification: Verification = field(default_factory=Verification)
    audit_trail: list[AuditEntry] = field(default_factory=list)
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def document(self, slot: KycDocumentType | str) -> KycDocument | None:
        return self.documents.get(str(slot))

    def has_document(self, slot: KycDocumentType | str) -> bool:
        doc = self.document(slot)
        return doc is not None and bool(doc.url)

    def documents_to_dict(self) -> dict[str, dict[str, Any] | None]:
        """All nine slots, empty ones as None."""
        return {
            slot.value: (self.documents[slot.value].to_dict() if slot.value in self.documents else None)
            for slot in KycDocumentType
        }

    @staticmethod
    def documents_from_dict(data: dict[str, Any] | None) -> dict[str, KycDocument]:
        return {slot: KycDocument.from_dict(doc) for slot, doc in (data or {}).items() if doc}


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def normalize_aadhaar(value: str) -> str:
    return re.sub(r"\s+", "", value)


def _check(errors: list[dict[str, str]], field_name: str, value: Any, pattern: re.Pattern[str], message: str) -> None:
    if value is not None and not pattern.match(str(value)):
        errors.append({"field": field_name, "message": message})


def validate_personal_info(updates: dict[str, Any]) -> dict[str, Any]:
    """Normalize and validate a partial personal-info update.

    Returns the normalized update. Raises one ValidationError listing every
    offending field.
    """
    cleaned = dict(updates)
    errors: list[dict[str, str]] = []

    if cleaned.get("pan_number") is not None:
        cleaned["pan_number"] = str(cleaned["pan_number"]).strip().upper()
    _check(errors, "pan_number", cleaned.get("pan_number"), PAN_PATTERN, "Invalid PAN format")

    if cleaned.get("aadhaar_number") is not None:
        cleaned["aadhaar_number"] = normalize_aadhaar(str(cleaned["aadhaar_number"]))
    _check(errors, "aadhaar_number", cleaned.get("aadhaar_number"), AADHAAR_PATTERN, "Aadhaar number must be 12 digits")

    address = cleaned.get("current_address") or {}
    _check(errors, "current_address.pincode", address.get("pincode"), PINCODE_PATTERN, "Invalid pincode")

    bank = dict(cleaned.get("bank_account") or {})
    if bank.get("ifsc_code") is not None:
        bank["ifsc_code"] = str(bank["ifsc_code"]).strip().upper()
        cleaned["bank_account"] = bank
    _check(errors, "bank_account.ifsc_code", bank.get("ifsc_code"), IFSC_PATTERN, "Invalid IFSC code")

    if errors:
        raise ValidationError(errors)
    return cleaned


def validate_business_info(updates: dict[str, Any]) -> dict[str, Any]:
    """Normalize and validate a partial business-info update."""
    cleaned = dict(updates)
    errors: list[dict[str, str]] = []

    if cleaned.get("gstin") is not None:
        cleaned["gstin"] = str(cleaned["gstin"]).strip().upper()
    _check(errors, "gstin", cleaned.get("gstin"), GSTIN_PATTERN, "Invalid GSTIN format")

    signatory = dict(cleaned.get("authorized_signatory") or {})
    if signatory.get("pan_number") is not None:
        signatory["pan_number"] = str(signatory["pan_number"]).strip().upper()
        cleaned["authorized_signatory"] = signatory
    _check(errors, "authorized_signatory.pan_number", signatory.get("pan_number"), PAN_PATTERN, "Invalid PAN format")

    address = cleaned.get("business_address") or {}
    _check(errors, "business_address.pincode", address.get("pincode"), PINCODE_PATTERN, "Invalid pincode")

    if errors:
        raise ValidationError(errors)
    return cleaned


def parse_document_slot(document_type: str) -> KycDocumentType:
    try:
        return KycDocumentType(document_type)
    except ValueError:
        valid = ", ".join(slot.value for slot in KycDocumentType)
        raise ValidationError.for_field("document_type", f"Invalid document type. Must be one of: {valid}") from None


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def _mark_in_progress(record: KycRecord) -> None:
    if record.status not in (KycStatus.APPROVED, KycStatus.REJECTED):
        record.status = KycStatus.IN_PROGRESS


def update_personal_info(record: KycRecord, updates: dict[str, Any], now: datetime) -> None:
    _merge(record.personal_info, validate_personal_info(updates))
    _mark_in_progress(record)
    record.updated_at = now


def update_business_info(record: KycRecord, updates: dict[str, Any], now: datetime) -> None:
    _merge(record.business_info, validate_business_info(updates))
    record.kyc_type = KycType.BUSINESS
    _mark_in_progress(record)
    record.updated_at = now


def put_document(record: KycRecord, slot: KycDocumentType, document: KycDocument, now: datetime) -> str | None:
    """Place ``document`` in ``slot``; return the URL it replaced, if any."""
    previous = record.documents.get(slot.value)
    record.documents[slot.value] = document
    _mark_in_progress(record)
    record.updated_at = now
    return previous.url if previous is not None else None


def missing_for_submission(record: KycRecord) -> list[str]:
    info = record.personal_info
    missing = []
    if not info.pan_number:
        missing.append("pan_number")
    if not info.aadhaar_number:
        missing.append("aadhaar_number")
    for slot in (KycDocumentType.PAN_CARD, KycDocumentType.AADHAAR_FRONT):
        if not record.has_document(slot):
            missing.append(slot.value)
    return missing


def mark_submitted(record: KycRecord, now: datetime) -> None:
    record.status = KycStatus.IN_PROGRESS
    record.verification.submitted_at = now
    record.updated_at = now


def approve(
    record: KycRecord,
    approved_by: str,
    now: datetime,
    validity_days: int = DEFAULT_VALIDITY_DAYS,
    scores: dict[str, int] | None = None,
) -> None:
    v = record.verification
    record.status = KycStatus.APPROVED
    v.approved_at = now
    v.approved_by = approved_by
    v.expiry_date = now + timedelta(days=validity_days)
    v.rejected_at = None
    v.rejected_by = None
    v.rejection_notes = None
    for name, value in (scores or {}).items():
        setattr(v, name, value)
    record.updated_at = now


def reject(record: KycRecord, rejected_by: str, now: datetime, notes: str | None = None) -> None:
    v = record.verification
    record.status = KycStatus.REJECTED
    v.rejected_at = now
    v.rejected_by = rejected_by
    v.rejection_notes = notes
    record.updated_at = now


def add_audit(
    record: KycRecord,
    action: str,
    performed_by: str,
    now: datetime,
    details: str | None = None,
    ip_address: str | None = None,
) -> None:
    record.audit_trail.append(
        AuditEntry(action=action, performed_by=performed_by, timestamp=now, details=details, ip_address=ip_address)
    )


# ---------------------------------------------------------------------------
# Read-only views
# ---------------------------------------------------------------------------


def effective_status(record: KycRecord, now: datetime) -> KycStatus:
    expiry = record.verification.expiry_date
    if record.status == KycStatus.APPROVED and expiry is not None and expiry < now:
        return KycStatus.EXPIRED
    return KycStatus(record.status)


def is_complete(record: KycRecord) -> bool:
    personal = record.personal_info
    if record.kyc_type == KycType.PERSONAL:
        return bool(
            personal.pan_number
            and personal.aadhaar_number
            and record.has_document(KycDocumentType.PAN_CARD)
            and record.has_document(KycDocumentType.AADHAAR_FRONT)
            and record.has_document(KycDocumentType.BANK_STATEMENT)
        )
    business = record.business_info
    return bool(
        business.business_name
        and business.registration_number
        and business.gstin
        and record.has_document(KycDocumentType.BUSINESS_REGISTRATION)
        and record.has_document(KycDocumentType.GST_CERTIFICATE)
        and personal.pan_number
        and record.has_document(KycDocumentType.PAN_CARD)
    )


def _checklist(record: KycRecord) -> list[bool]:
    personal = record.personal_info
    if record.kyc_type == KycType.PERSONAL:
        return [
            bool(personal.pan_number),
            bool(personal.aadhaar_number),
            bool(personal.bank_account.account_number),
            bool(personal.current_address.line1),
            record.has_document(KycDocumentType.PAN_CARD),
            record.has_document(KycDocumentType.AADHAAR_FRONT),
            record.has_document(KycDocumentType.BANK_STATEMENT),
            record.has_document(KycDocumentType.ADDRESS_PROOF),
        ]
    business = record.business_info
    return [
        bool(business.business_name),
        bool(business.registration_number),
        bool(business.gstin),
        bool(business.authorized_signatory.name),
        bool(personal.pan_number),
        record.has_document(KycDocumentType.BUSINESS_REGISTRATION),
        record.has_document(KycDocumentType.GST_CERTIFICATE),
        record.has_document(KycDocumentType.PAN_CARD),
        record.has_document(KycDocumentType.BUSINESS_BANK_STATEMENT),
        record.has_document(KycDocumentType.AUTHORIZED_SIGNATORY_ID),
    ]


def completion_percentage(record: KycRecord) -> int:
    checklist = _checklist(record)
    return round_half_up(100 * sum(checklist) / len(checklist))

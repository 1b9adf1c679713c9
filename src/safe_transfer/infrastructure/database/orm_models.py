"""SQLAlchemy 2.0 ORM models for Safe Transfer.

Four tables:
    1. parties      - Buyers and sellers (claimed accounts and unclaimed placeholders).
    2. deals        - Escrow deals; workflow, messages and documents as JSON.
    3. kyc_records  - One identity verification record per party.
    4. counters     - Named monotonically increasing sequences (deal numbers).

Design decisions:
    - UUID primary keys via the portable ``Uuid`` type (PostgreSQL and SQLite).
    - JSON columns become JSONB on PostgreSQL.
    - ``status`` on deals is a projection of the workflow, written by the
      repository only; ``flagged``/``risk_score`` are projections of the flag
      JSON so admin queries can filter on them.
    - ``version`` is a mapper version counter: an UPDATE that lost a race
      raises StaleDataError instead of overwriting.
    - Rows are never deleted by the application.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime
from decimal import Decimal  # noqa: TC003 - needed at runtime by SQLAlchemy Mapped[]

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    TypeDecorator,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from safe_transfer.domain.enums import DealStatus, KycStatus

JSONType = JSON().with_variant(JSONB(), "postgresql")


class UTCDateTime(TypeDecorator):
    """Timezone-aware datetimes on every backend.

    SQLite hands back naive values; they are stored as UTC and re-tagged.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value, dialect):  # noqa: ANN001
        if value is not None and value.tzinfo is not None:
            value = value.astimezone(UTC)
        return value

    def process_result_value(self, value, dialect):  # noqa: ANN001
        if value is not None and value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _in_list(column: str, values) -> str:  # noqa: ANN001
    quoted = ", ".join(f"'{v.value}'" for v in values)
    return f"{column} IN ({quoted})"


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# ---------------------------------------------------------------------------
# 1. parties
# ---------------------------------------------------------------------------
class Party(Base):
    """A buyer or seller. Placeholders are created unclaimed by deal invitations."""

    __tablename__ = "parties"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)

    first_name: Mapped[str] = mapped_column(String(50), nullable=False)
    last_name: Mapped[str] = mapped_column(String(50), nullable=False, default="")
    phone: Mapped[str] = mapped_column(String(10), nullable=False, unique=True)
    user_type: Mapped[str] = mapped_column(String(20), nullable=False, default="personal")

    phone_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    kyc_status: Mapped[str] = mapped_column(String(20), nullable=False, default=KycStatus.PENDING.value)
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    is_claimed: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=True,
        comment="False for placeholders provisioned by a deal invitation",
    )

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        CheckConstraint("user_type IN ('personal', 'business')", name="ck_party_user_type"),
        Index("idx_party_kyc_status", "kyc_status"),
    )

    def __repr__(self) -> str:
        return f"<Party id={self.id} phone={self.phone} kyc={self.kyc_status}>"


# ---------------------------------------------------------------------------
# 2. deals
# ---------------------------------------------------------------------------
class Deal(Base):
    """An escrow deal between a buyer and a seller."""

    __tablename__ = "deals"

    # --- Identity ---
    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    deal_id: Mapped[str] = mapped_column(
        String(12),
        nullable=False,
        unique=True,
        comment='Human-readable number, "ST" + 6 digits',
    )

    # --- Parties ---
    buyer_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("parties.id"), nullable=False)
    seller_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("parties.id"), nullable=False)
    initiator_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("parties.id"), nullable=False)

    # --- Terms ---
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String(100), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, comment="Deal amount in INR")
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="INR")
    escrow_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    escrow_fee_percentage: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    delivery_method: Mapped[str] = mapped_column(String(20), nullable=False)
    inspection_period: Mapped[int] = mapped_column(Integer, nullable=False, default=3)
    additional_terms: Mapped[str | None] = mapped_column(Text, nullable=True)

    # --- Lifecycle ---
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=DealStatus.CREATED.value,
        comment="Projection of derive_status(workflow, closure)",
    )
    closure: Mapped[str | None] = mapped_column(String(20), nullable=True, default=None)
    workflow: Mapped[dict] = mapped_column(JSONType, nullable=False)

    # --- Activity ---
    messages: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    documents: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)
    dispute: Mapped[dict | None] = mapped_column(JSONType, nullable=True, default=None)

    # --- Admin flag ---
    flag: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    flagged: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    risk_score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # --- Timestamps ---
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    accepted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(_in_list("status", DealStatus), name="ck_deal_valid_status"),
        CheckConstraint("amount >= 1000 AND amount <= 100000000", name="ck_deal_amount_range"),
        CheckConstraint("inspection_period BETWEEN 1 AND 30", name="ck_deal_inspection_period"),
        CheckConstraint("risk_score BETWEEN 0 AND 100", name="ck_deal_risk_score"),
        Index("idx_deal_status", "status"),
        Index("idx_deal_buyer", "buyer_id"),
        Index("idx_deal_seller", "seller_id"),
        Index("idx_deal_flagged", "flagged", "risk_score"),
        Index("idx_deal_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Deal id={self.deal_id} status={self.status} amount={self.amount} INR>"


# ---------------------------------------------------------------------------
# 3. kyc_records
# ---------------------------------------------------------------------------
class KycRecordRow(Base):
    """Identity verification state for one party."""

    __tablename__ = "kyc_records"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("parties.id"), nullable=False, unique=True)

    kyc_type: Mapped[str] = mapped_column(String(20), nullable=False, default="personal")
    kyc_level: Mapped[str] = mapped_column(String(20), nullable=False, default="basic")
    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default=KycStatus.PENDING.value,
        comment="Stored status; 'expired' is derived at read time and never written",
    )

    personal_info: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    business_info: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    documents: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    verification: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    audit_trail: Mapped[list] = mapped_column(JSONType, nullable=False, default=list)

    submitted_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, default=_utcnow)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'approved', 'rejected')",
            name="ck_kyc_valid_status",
        ),
        Index("idx_kyc_status", "status"),
        Index("idx_kyc_submitted_at", "submitted_at"),
    )

    def __repr__(self) -> str:
        return f"<KycRecordRow user={self.user_id} status={self.status}>"


# ---------------------------------------------------------------------------
# 4. counters
# ---------------------------------------------------------------------------
class Counter(Base):
    """A named sequence. Incremented only while holding the matching lock."""

    __tablename__ = "counters"

    name: Mapped[str] = mapped_column(String(40), primary_key=True)
    value: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        return f"<Counter {self.name}={self.value}>"

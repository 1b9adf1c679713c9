"""Repository classes for database access.

Repositories encapsulate all SQL queries and the mapping between ORM rows
and domain records. They accept an AsyncSession and never manage their own
transactions (that's the caller's responsibility); they only flush.
"""

from __future__ import annotations

import uuid
from dataclasses import asdict
from typing import TYPE_CHECKING

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from safe_transfer.domain.deal_workflow import (
    DealDocument,
    DealState,
    DealTerms,
    Dispute,
    FlagInfo,
    Message,
    Workflow,
    derive_status,
)
from safe_transfer.domain.enums import DealClosure, DealStatus
from safe_transfer.domain.exceptions import ConcurrentModificationError
from safe_transfer.domain.kyc import (
    AuditEntry,
    BusinessInfo,
    KycRecord,
    PersonalInfo,
    Verification,
)
from safe_transfer.infrastructure.database.orm_models import (
    Counter,
    Deal,
    KycRecordRow,
    Party,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

    from sqlalchemy.ext.asyncio import AsyncSession


def as_uuid(value: str | uuid.UUID) -> uuid.UUID | None:
    """Parse an id from the outside world; None when it is not a UUID."""
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


async def _flush(session: AsyncSession, entity: str, entity_id: str) -> None:
    try:
        await session.flush()
    except StaleDataError as exc:
        raise ConcurrentModificationError(entity, entity_id) from exc


# ---------------------------------------------------------------------------
# Parties
# ---------------------------------------------------------------------------


class PartyRepository:
    """Data access for parties."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, party: Party) -> Party:
        self._session.add(party)
        await self._session.flush()
        return party

    async def get_by_id(self, party_id: str | uuid.UUID) -> Party | None:
        pk = as_uuid(party_id)
        if pk is None:
            return None
        return await self._session.get(Party, pk)

    async def get_by_phone(self, phone: str) -> Party | None:
        result = await self._session.execute(select(Party).where(Party.phone == phone))
        return result.scalar_one_or_none()

    async def get_many(self, party_ids: Iterable[str]) -> dict[str, Party]:
        pks = [pk for pk in (as_uuid(p) for p in party_ids) if pk is not None]
        if not pks:
            return {}
        result = await self._session.execute(
            select(Party).where(Party.id.in_(pks)).execution_options(populate_existing=True)
        )
        return {str(p.id): p for p in result.scalars().all()}

    async def update_kyc_status(self, party: Party, kyc_status: str) -> Party:
        party.kyc_status = kyc_status
        await self._session.flush()
        return party

    async def claim(self, party: Party, first_name: str, last_name: str, user_type: str) -> Party:
        """Turn a provisioned placeholder into a registered party."""
        party.first_name = first_name
        party.last_name = last_name
        party.user_type = user_type
        party.is_claimed = True
        party.phone_verified = True
        await self._session.flush()
        return party


# ---------------------------------------------------------------------------
# Deals
# ---------------------------------------------------------------------------


def deal_to_state(row: Deal) -> DealState:
    return DealState(
        id=str(row.id),
        deal_id=row.deal_id,
        buyer_id=str(row.buyer_id),
        seller_id=str(row.seller_id),
        initiator_id=str(row.initiator_id),
        terms=DealTerms(
            title=row.title,
            description=row.description,
            category=row.category,
            subcategory=row.subcategory,
            amount=row.amount,
            currency=row.currency,
            escrow_fee=row.escrow_fee,
            escrow_fee_percentage=row.escrow_fee_percentage,
            delivery_method=row.delivery_method,
            inspection_period=row.inspection_period,
            additional_terms=row.additional_terms,
        ),
        workflow=Workflow.from_dict(row.workflow),
        closure=DealClosure(row.closure) if row.closure else None,
        messages=[Message.from_dict(m) for m in row.messages or []],
        documents=[DealDocument.from_dict(d) for d in row.documents or []],
        dispute=Dispute.from_dict(row.dispute) if row.dispute else None,
        flag=FlagInfo.from_dict(row.flag),
        created_at=row.created_at,
        accepted_at=row.accepted_at,
        completed_at=row.completed_at,
        updated_at=row.updated_at,
    )


def _write_state(row: Deal, state: DealState) -> None:
    """Copy the mutable parts of ``state`` onto ``row``. Terms never change."""
    row.workflow = state.workflow.to_dict()
    row.closure = state.closure.value if state.closure else None
    row.status = derive_status(state.workflow, state.closure).value
    row.messages = [m.to_dict() for m in state.messages]
    row.documents = [d.to_dict() for d in state.documents]
    row.dispute = state.dispute.to_dict() if state.dispute else None
    row.flag = state.flag.to_dict()
    row.flagged = state.flag.flagged
    row.risk_score = state.flag.risk_score
    row.accepted_at = state.accepted_at
    row.completed_at = state.completed_at
    if state.updated_at is not None:
        row.updated_at = state.updated_at


class DealRepository:
    """Data access for deals. Reads and writes DealState records."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _row(self, deal_uuid: uuid.UUID) -> Deal | None:
        result = await self._session.execute(
            select(Deal).where(Deal.id == deal_uuid).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def create(self, state: DealState) -> DealState:
        """Insert a new deal built by the service."""
        row = Deal(
            id=uuid.UUID(state.id),
            deal_id=state.deal_id,
            buyer_id=uuid.UUID(state.buyer_id),
            seller_id=uuid.UUID(state.seller_id),
            initiator_id=uuid.UUID(state.initiator_id),
            title=state.terms.title,
            description=state.terms.description,
            category=state.terms.category,
            subcategory=state.terms.subcategory,
            amount=state.terms.amount,
            currency=state.terms.currency,
            escrow_fee=state.terms.escrow_fee,
            escrow_fee_percentage=state.terms.escrow_fee_percentage,
            delivery_method=state.terms.delivery_method,
            inspection_period=state.terms.inspection_period,
            additional_terms=state.terms.additional_terms,
        )
        if state.created_at is not None:
            row.created_at = state.created_at
        _write_state(row, state)
        self._session.add(row)
        await self._session.flush()
        return deal_to_state(row)

    async def get_by_id(self, deal_id: str) -> DealState | None:
        """Fetch by UUID or by the human-readable ``ST######`` number."""
        pk = as_uuid(deal_id)
        if pk is not None:
            row = await self._row(pk)
        else:
            result = await self._session.execute(
                select(Deal).where(Deal.deal_id == deal_id.upper()).execution_options(populate_existing=True)
            )
            row = result.scalar_one_or_none()
        return deal_to_state(row) if row is not None else None

    async def save(self, state: DealState) -> DealState:
        """Write ``state`` back to its row, checking the version counter."""
        row = await self._session.get(Deal, uuid.UUID(state.id))
        if row is None:
            raise ConcurrentModificationError("Deal", state.deal_id)
        _write_state(row, state)
        await _flush(self._session, "Deal", state.deal_id)
        return deal_to_state(row)

    async def list_for_party(
        self,
        party_id: str,
        statuses: list[str] | None = None,
        category: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[DealState], int]:
        """Deals where the party is buyer or seller, newest first, with total count."""
        pk = as_uuid(party_id)
        if pk is None:
            return [], 0
        conditions = [or_(Deal.buyer_id == pk, Deal.seller_id == pk)]
        if statuses:
            conditions.append(Deal.status.in_(statuses))
        if category:
            conditions.append(Deal.category == category)

        total = await self._session.scalar(select(func.count()).select_from(Deal).where(*conditions))
        result = await self._session.execute(
            select(Deal)
            .where(*conditions)
            .order_by(Deal.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        return [deal_to_state(r) for r in result.scalars().all()], int(total or 0)

    async def ids_waiting_for_kyc(self, party_id: str) -> list[str]:
        """Deals of this party that are at the KYC gate or may still reach it.

        ``created`` deals are included: an accept that is in flight when the
        approval commits has already read the old KYC status, and the caller
        re-syncs the deal once that accept releases the deal lock.
        """
        pk = as_uuid(party_id)
        if pk is None:
            return []
        result = await self._session.execute(
            select(Deal.id).where(
                or_(Deal.buyer_id == pk, Deal.seller_id == pk),
                Deal.status.in_(
                    [DealStatus.CREATED.value, DealStatus.ACCEPTED.value, DealStatus.KYC_PENDING.value]
                ),
            )
        )
        return [str(deal_id) for deal_id in result.scalars().all()]

    async def list_flagged(self, min_risk: int = 0, max_risk: int = 100) -> list[DealState]:
        result = await self._session.execute(
            select(Deal)
            .where(Deal.flagged.is_(True), Deal.risk_score >= min_risk, Deal.risk_score <= max_risk)
            .order_by(Deal.risk_score.desc(), Deal.created_at.desc())
        )
        return [deal_to_state(r) for r in result.scalars().all()]


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------


class CounterRepository:
    """Named sequences. Callers hold the sequence's lock while calling next_value."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def next_value(self, name: str) -> int:
        result = await self._session.execute(
            select(Counter).where(Counter.name == name).execution_options(populate_existing=True)
        )
        counter = result.scalar_one_or_none()
        if counter is None:
            counter = Counter(name=name, value=0)
            self._session.add(counter)
        counter.value += 1
        await self._session.flush()
        return counter.value


# ---------------------------------------------------------------------------
# KYC records
# ---------------------------------------------------------------------------


def kyc_to_record(row: KycRecordRow) -> KycRecord:
    return KycRecord(
        id=str(row.id),
        user_id=str(row.user_id),
        kyc_type=row.kyc_type,
        kyc_level=row.kyc_level,
        status=row.status,
        personal_info=PersonalInfo.from_dict(row.personal_info),
        business_info=BusinessInfo.from_dict(row.business_info),
        documents=KycRecord.documents_from_dict(row.documents),
        verification=Verification.from_dict(row.verification),
        audit_trail=[AuditEntry.from_dict(a) for a in row.audit_trail or []],
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _write_kyc(row: KycRecordRow, record: KycRecord) -> None:
    row.kyc_type = str(record.kyc_type)
    row.kyc_level = str(record.kyc_level)
    row.status = str(record.status)
    row.personal_info = asdict(record.personal_info)
    row.business_info = asdict(record.business_info)
    row.documents = record.documents_to_dict()
    row.verification = record.verification.to_dict()
    row.audit_trail = [a.to_dict() for a in record.audit_trail]
    row.submitted_at = record.verification.submitted_at
    if record.updated_at is not None:
        row.updated_at = record.updated_at


class KycRepository:
    """Data access for KYC records."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _row_for_user(self, user_uuid: uuid.UUID) -> KycRecordRow | None:
        result = await self._session.execute(
            select(KycRecordRow)
            .where(KycRecordRow.user_id == user_uuid)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_user(self, user_id: str) -> KycRecord | None:
        pk = as_uuid(user_id)
        if pk is None:
            return None
        row = await self._row_for_user(pk)
        return kyc_to_record(row) if row is not None else None

    async def get_by_id(self, kyc_id: str) -> KycRecord | None:
        pk = as_uuid(kyc_id)
        if pk is None:
            return None
        result = await self._session.execute(
            select(KycRecordRow).where(KycRecordRow.id == pk).execution_options(populate_existing=True)
        )
        row = result.scalar_one_or_none()
        return kyc_to_record(row) if row is not None else None

    async def get_or_create(self, user_id: str) -> KycRecord:
        """Return the user's record, inserting an empty one on first access.

        Callers hold the user's KYC lock. If another writer still wins the
        race, the unique constraint on ``user_id`` trips, the transaction is
        rolled back and the winner's row is read.
        """
        user_uuid = uuid.UUID(user_id)
        row = await self._row_for_user(user_uuid)
        if row is not None:
            return kyc_to_record(row)

        row = KycRecordRow(user_id=user_uuid)
        _write_kyc(row, KycRecord(id="", user_id=user_id))
        self._session.add(row)
        try:
            await self._session.flush()
        except IntegrityError:
            await self._session.rollback()
            row = await self._row_for_user(user_uuid)
            if row is None:
                raise
        return kyc_to_record(row)

    async def save(self, record: KycRecord) -> KycRecord:
        row = await self._session.get(KycRecordRow, uuid.UUID(record.id))
        if row is None:
            raise ConcurrentModificationError("KYC record", record.id)
        _write_kyc(row, record)
        await _flush(self._session, "KYC record", record.id)
        return kyc_to_record(row)

    async def list_for_review(self, statuses: list[str]) -> list[KycRecord]:
        """Records in ``statuses``, most recently submitted first."""
        result = await self._session.execute(
            select(KycRecordRow)
            .where(KycRecordRow.status.in_(statuses))
            .order_by(KycRecordRow.submitted_at.desc(), KycRecordRow.created_at.desc())
        )
        return [kyc_to_record(r) for r in result.scalars().all()]

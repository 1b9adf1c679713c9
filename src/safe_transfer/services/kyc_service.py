"""KYC Service: per-user identity verification records.

Every mutating call runs under the user's ``kyc:<user uuid>`` lock, works
on a freshly read record, appends exactly one audit entry and commits.
A call that fails leaves the stored record and its audit trail untouched.

Approval cascades twice: the party's ``kyc_status`` is updated in the same
transaction, and after commit every deal still waiting on this party's KYC
is re-evaluated through DealService.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from safe_transfer.domain.enums import KycReviewAction, KycStatus
from safe_transfer.domain.exceptions import (
    AuthorizationError,
    FileStoreError,
    KycNotFoundError,
    PartyNotFoundError,
    PreconditionError,
    ValidationError,
)
from safe_transfer.domain.kyc import (
    DEFAULT_VALIDITY_DAYS,
    KycDocument,
    KycRecord,
    add_audit,
    approve,
    completion_percentage,
    effective_status,
    is_complete,
    mark_submitted,
    missing_for_submission,
    parse_document_slot,
    put_document,
    reject,
    update_business_info,
    update_personal_info,
)
from safe_transfer.domain.ports import FileMetadata
from safe_transfer.infrastructure.database.repositories import KycRepository, as_uuid
from safe_transfer.infrastructure.locks import kyc_lock_key
from safe_transfer.infrastructure.party_directory import SqlPartyDirectory
from safe_transfer.logging_config import get_logger

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from typing import Any

    from sqlalchemy.ext.asyncio import AsyncSession

    from safe_transfer.domain.ports import FileStore
    from safe_transfer.domain.verifier_protocol import KycVerifier
    from safe_transfer.infrastructure.locks import LockManager
    from safe_transfer.services.deal_service import DealService

logger = get_logger(__name__)

SYSTEM_ACTOR = "system"


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass
class KycStatusView:
    record: KycRecord
    status: KycStatus
    completion_percentage: int
    is_complete: bool


class KycService:
    """Manages KYC records and their approval cascade."""

    def __init__(
        self,
        session: AsyncSession,
        *,
        locks: LockManager,
        file_store: FileStore,
        verifier: KycVerifier,
        deal_service: DealService | None = None,
        validity_days: int = DEFAULT_VALIDITY_DAYS,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._session = session
        self._records = KycRepository(session)
        self._parties = SqlPartyDirectory(session)
        self._locks = locks
        self._file_store = file_store
        self._verifier = verifier
        self._deal_service = deal_service
        self._validity_days = validity_days
        self._clock = clock

    def _view(self, record: KycRecord) -> KycStatusView:
        return KycStatusView(
            record=record,
            status=effective_status(record, self._clock()),
            completion_percentage=completion_percentage(record),
            is_complete=is_complete(record),
        )

    async def _require_party(self, user_id: str) -> None:
        if as_uuid(user_id) is None or await self._parties.get(user_id) is None:
            raise PartyNotFoundError(user_id)

    async def _mutate(
        self,
        user_id: str,
        action: str,
        mutate: Callable[[KycRecord, datetime], Awaitable[str | None]],
        performed_by: str | None = None,
        ip_address: str | None = None,
    ) -> KycRecord:
        """Load or create the user's record under its lock, apply ``mutate``, audit and commit.

        ``mutate`` returns the audit details text.
        """
        async with self._locks.hold(kyc_lock_key(user_id)):
            try:
                record = await self._records.get_or_create(user_id)
                now = self._clock()
                details = await mutate(record, now)
                add_audit(record, action, performed_by or user_id, now, details=details, ip_address=ip_address)
                record.updated_at = now
                record = await self._records.save(record)
                await self._session.commit()
            except Exception:
                await self._session.rollback()
                raise
        return record

    async def _cascade(self, user_id: str, status: KycStatus) -> None:
        if status == KycStatus.APPROVED and self._deal_service is not None:
            advanced = await self._deal_service.sync_kyc_for_party(user_id)
            if advanced:
                logger.info("kyc.deals_advanced", user_id=user_id, deals=advanced)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get_or_create(self, user_id: str) -> KycRecord:
        """Return the user's record, creating an empty one on first access.

        Creation is not a mutating call in the audit sense: no entry is added.
        """
        await self._require_party(user_id)
        async with self._locks.hold(kyc_lock_key(user_id)):
            try:
                record = await self._records.get_or_create(user_id)
                await self._session.commit()
            except Exception:
                await self._session.rollback()
                raise
        return record

    async def get_status(self, user_id: str) -> KycStatusView:
        return self._view(await self.get_or_create(user_id))

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    async def upload_document(
        self,
        user_id: str,
        document_type: str,
        filename: str,
        data: bytes,
        content_type: str | None = None,
        ip_address: str | None = None,
    ) -> KycStatusView:
        slot = parse_document_slot(document_type)
        if not data:
            raise ValidationError.for_field("file", "File is empty")
        await self._require_party(user_id)

        url = await self._file_store.store(
            data,
            FileMetadata(filename=filename, content_type=content_type, owner_id=user_id, category="kyc"),
        )
        replaced: list[str] = []

        async def mutate(record: KycRecord, now: datetime) -> str:
            previous = put_document(record, slot, KycDocument(filename=filename, url=url, uploaded_at=now), now)
            if previous and previous != url:
                replaced.append(previous)
            return f"Uploaded {slot.value}: {filename}"

        try:
            record = await self._mutate(user_id, "document_uploaded", mutate, ip_address=ip_address)
        except Exception:
            await self._discard_file(url)
            raise

        for old_url in replaced:
            await self._discard_file(old_url)

        logger.info("kyc.document_uploaded", user_id=user_id, slot=slot.value, replaced=bool(replaced))
        return self._view(record)

    async def _discard_file(self, url: str) -> None:
        try:
            await self._file_store.delete(url)
        except FileStoreError as exc:
            logger.warning("kyc.orphan_file", url=url, error=str(exc))

    # ------------------------------------------------------------------
    # Info blocks
    # ------------------------------------------------------------------

    async def update_personal_info(
        self,
        user_id: str,
        updates: dict[str, Any],
        ip_address: str | None = None,
    ) -> KycStatusView:
        await self._require_party(user_id)

        async def mutate(record: KycRecord, now: datetime) -> str:
            update_personal_info(record, updates, now)
            return f"Updated {', '.join(sorted(updates)) or 'nothing'}"

        record = await self._mutate(user_id, "personal_info_updated", mutate, ip_address=ip_address)
        logger.info("kyc.personal_info_updated", user_id=user_id, fields=sorted(updates))
        return self._view(record)

    async def update_business_info(
        self,
        user_id: str,
        updates: dict[str, Any],
        ip_address: str | None = None,
    ) -> KycStatusView:
        await self._require_party(user_id)

        async def mutate(record: KycRecord, now: datetime) -> str:
            update_business_info(record, updates, now)
            return f"Updated {', '.join(sorted(updates)) or 'nothing'}"

        record = await self._mutate(user_id, "business_info_updated", mutate, ip_address=ip_address)
        logger.info("kyc.business_info_updated", user_id=user_id, fields=sorted(updates))
        return self._view(record)

    # ------------------------------------------------------------------
    # Submission and review
    # ------------------------------------------------------------------

    async def submit(self, user_id: str, ip_address: str | None = None) -> KycStatusView:
        """Submit the record for verification.

        Raises:
            KycNotFoundError: the user never started KYC.
            PreconditionError: PAN, Aadhaar or their images are missing, or
                the record is already approved and not yet expired.
        """
        if await self._records.get_by_user(user_id) is None:
            raise KycNotFoundError(user_id)

        async def mutate(record: KycRecord, now: datetime) -> str:
            missing = missing_for_submission(record)
            if missing:
                raise PreconditionError(f"Missing required KYC information: {', '.join(missing)}")
            if effective_status(record, now) == KycStatus.APPROVED:
                raise PreconditionError("KYC is already approved")

            mark_submitted(record, now)
            result = await self._verifier.evaluate(record)
            if result.approved:
                approve(record, SYSTEM_ACTOR, now, validity_days=self._validity_days, scores=result.scores)
                await self._parties.set_kyc_status(user_id, KycStatus.APPROVED)
            else:
                for name, value in result.scores.items():
                    setattr(record.verification, name, value)
                await self._parties.set_kyc_status(user_id, KycStatus.IN_PROGRESS)
            return result.details or None

        record = await self._mutate(user_id, "submitted", mutate, ip_address=ip_address)
        logger.info("kyc.submitted", user_id=user_id, status=record.status)
        await self._cascade(user_id, KycStatus(record.status))
        return self._view(record)

    async def review(self, kyc_id: str, admin_id: str, action: str, notes: str | None = None) -> KycStatusView:
        """Approve or reject a record on behalf of an admin."""
        if not await self._parties.is_admin(admin_id):
            raise AuthorizationError("Admin access required")
        try:
            review_action = KycReviewAction(action)
        except ValueError:
            raise ValidationError.for_field("action", "Action must be approve or reject") from None

        located = await self._records.get_by_id(kyc_id)
        if located is None:
            raise KycNotFoundError(kyc_id)
        user_id = located.user_id

        async def mutate(record: KycRecord, now: datetime) -> str | None:
            if review_action == KycReviewAction.APPROVE:
                approve(record, admin_id, now, validity_days=self._validity_days)
                status = KycStatus.APPROVED
            else:
                reject(record, admin_id, now, notes=notes)
                status = KycStatus.REJECTED
            record.verification.reviewed_at = now
            record.verification.reviewed_by = admin_id
            await self._parties.set_kyc_status(user_id, status)
            return notes

        record = await self._mutate(user_id, f"admin_{review_action.value}", mutate, performed_by=admin_id)
        logger.info("kyc.reviewed", kyc_id=kyc_id, admin_id=admin_id, action=review_action.value)
        await self._cascade(user_id, KycStatus(record.status))
        return self._view(record)

    async def list_for_review(self, statuses: list[str] | None = None) -> list[KycStatusView]:
        records = await self._records.list_for_review(statuses or [KycStatus.IN_PROGRESS.value])
        return [self._view(r) for r in records]

"""Shared test fixtures for the Safe Transfer test suite.

Provides:
    - An in-memory SQLite database (one shared connection) per test
    - Recording / failing notification dispatchers and an in-memory file store
    - A controllable clock
    - Service factories wired to all of the above
    - Party, draft and workflow-driving factories
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.pool import StaticPool

from safe_transfer.domain.exceptions import FileStoreError, NotificationError
from safe_transfer.domain.ports import FileMetadata, NotificationOutcome, PartyInfo
from safe_transfer.infrastructure.database.engine import build_engine, create_tables, make_session_factory
from safe_transfer.infrastructure.locks import InProcessLockManager
from safe_transfer.services.admin_service import AdminService
from safe_transfer.services.deal_service import DealDraft, DealService
from safe_transfer.services.kyc_service import KycService
from safe_transfer.services.notification_service import NotificationService
from safe_transfer.services.party_service import PartyService
from safe_transfer.services.payment_service import PaymentService
from safe_transfer.verifiers import VerifierFactory

T0 = datetime(2026, 3, 1, 9, 0, tzinfo=UTC)


# ---------------------------------------------------------------------------
# Collaborator fakes
# ---------------------------------------------------------------------------


@dataclass
class SentNotification:
    party_id: str
    phone: str
    message: str


class RecordingNotifier:
    """NotificationDispatcher that remembers every message."""

    def __init__(self) -> None:
        self.sent: list[SentNotification] = []

    async def notify(self, party: PartyInfo, message: str) -> NotificationOutcome:
        self.sent.append(SentNotification(party_id=party.id, phone=party.phone, message=message))
        return NotificationOutcome(delivered=True, message_id=f"test-{len(self.sent)}")

    def messages_for(self, party_id: str) -> list[str]:
        return [n.message for n in self.sent if n.party_id == party_id]


class FailingNotifier:
    async def notify(self, party: PartyInfo, message: str) -> NotificationOutcome:
        raise NotificationError("gateway down")


class HangingNotifier:
    async def notify(self, party: PartyInfo, message: str) -> NotificationOutcome:
        await asyncio.sleep(3600)
        return NotificationOutcome(delivered=True)


class InMemoryFileStore:
    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}
        self.deleted: list[str] = []
        self._counter = 0

    async def store(self, data: bytes, metadata: FileMetadata) -> str:
        self._counter += 1
        url = f"/uploads/{metadata.category}/{self._counter}-{metadata.filename}"
        self.files[url] = data
        return url

    async def delete(self, url: str) -> bool:
        self.deleted.append(url)
        return self.files.pop(url, None) is not None


class BrokenFileStore(InMemoryFileStore):
    async def store(self, data: bytes, metadata: FileMetadata) -> str:
        raise FileStoreError("disk full")


@dataclass
class Clock:
    now: datetime = T0

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def engine():
    eng = build_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return make_session_factory(engine)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as s:
        yield s


# ---------------------------------------------------------------------------
# Collaborators and services
# ---------------------------------------------------------------------------


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def file_store() -> InMemoryFileStore:
    return InMemoryFileStore()


@pytest.fixture
def locks() -> InProcessLockManager:
    return InProcessLockManager(blocking_timeout=2.0)


@dataclass
class Services:
    deals: DealService
    kyc: KycService
    admin: AdminService
    parties: PartyService
    notifier: RecordingNotifier
    file_store: InMemoryFileStore
    clock: Clock


def build_services(session, *, locks, notifier, file_store, clock, verifier: str = "auto_approve") -> Services:
    deals = DealService(
        session,
        locks=locks,
        notifications=NotificationService(notifier, timeout=0.5),
        payments=PaymentService(simulate=True),
        file_store=file_store,
        clock=clock,
    )
    kyc = KycService(
        session,
        locks=locks,
        file_store=file_store,
        verifier=VerifierFactory.create(verifier),
        deal_service=deals,
        clock=clock,
    )
    return Services(
        deals=deals,
        kyc=kyc,
        admin=AdminService(session, deals=deals, kyc=kyc),
        parties=PartyService(session),
        notifier=notifier,
        file_store=file_store,
        clock=clock,
    )


@pytest.fixture
def services(session, locks, notifier, file_store, clock) -> Services:
    return build_services(session, locks=locks, notifier=notifier, file_store=file_store, clock=clock)


@pytest.fixture
def services_factory(session, locks, notifier, file_store, clock):
    """Build a second wiring over the same session, e.g. with a failing collaborator."""

    def factory(**overrides) -> Services:
        kwargs = {"locks": locks, "notifier": notifier, "file_store": file_store, "clock": clock}
        kwargs.update(overrides)
        return build_services(session, **kwargs)

    return factory


@pytest.fixture
def wire_services(locks, notifier, file_store, clock):
    """Wire services onto any session; sessions built this way share locks and fakes."""

    def factory(session, **overrides) -> Services:
        kwargs = {"locks": locks, "notifier": notifier, "file_store": file_store, "clock": clock}
        kwargs.update(overrides)
        return build_services(session, **kwargs)

    return factory


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    """SQLite on disk with a real pool, so each session gets its own connection."""
    eng = build_engine(f"sqlite+aiosqlite:///{tmp_path / 'safe_transfer.db'}")
    await create_tables(eng)
    yield eng
    await eng.dispose()


@pytest.fixture
def failing_notifier() -> FailingNotifier:
    return FailingNotifier()


@pytest.fixture
def hanging_notifier() -> HangingNotifier:
    return HangingNotifier()


@pytest.fixture
def broken_file_store() -> BrokenFileStore:
    return BrokenFileStore()


# ---------------------------------------------------------------------------
# Data factories
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def buyer(services: Services) -> PartyInfo:
    return await services.parties.register(phone="9876543210", first_name="Asha", last_name="Rao")


@pytest_asyncio.fixture
async def seller(services: Services) -> PartyInfo:
    return await services.parties.register(phone="9123456780", first_name="Ravi", last_name="Kumar")


@pytest_asyncio.fixture
async def admin(services: Services) -> PartyInfo:
    return await services.parties.register(phone="9000000001", first_name="Ops", last_name="Admin", is_admin=True)


def _draft(**overrides) -> DealDraft:
    values = {
        "title": "Honda City 2019 sedan",
        "description": "Single owner, 32,000 km, full service history.",
        "category": "vehicle",
        "amount": Decimal("50000"),
        "delivery_method": "in_person",
        "role": "buyer",
        "counterparty_phone": "9123456780",
        "counterparty_name": "Ravi Kumar",
    }
    values.update(overrides)
    return DealDraft(**values)


@pytest.fixture
def make_draft():
    """Vehicle deal for ₹50,000 opened by the buyer against the seller's phone."""
    return _draft


@pytest.fixture
def approve_kyc(services: Services):
    """Fill in the minimum KYC for a user and submit it; auto-approve approves it."""

    async def _approve(user_id: str, kyc: KycService | None = None):
        kyc = kyc or services.kyc
        await kyc.update_personal_info(user_id, {"pan_number": "ABCDE1234F", "aadhaar_number": "123456789012"})
        await kyc.upload_document(user_id, "panCard", "pan.jpg", b"pan")
        await kyc.upload_document(user_id, "aadhaarFront", "aadhaar.jpg", b"aadhaar")
        return await kyc.submit(user_id)

    return _approve


@pytest.fixture
def run_deal(services: Services, approve_kyc):
    """Drive a deal forward to a named status with the default parties."""

    async def _run(deal_id: str, buyer_id: str, seller_id: str, until: str):
        deals = services.deals
        steps = [
            ("accepted", lambda: _accept_both(deals, deal_id, buyer_id, seller_id)),
            ("documents_pending", lambda: approve_kyc(seller_id)),
            ("payment_pending", lambda: deals.upload_document(deal_id, seller_id, "ownership", "rc.pdf", b"rc")),
            ("contract_pending", lambda: deals.deposit_payment(deal_id, buyer_id, "upi")),
            ("funds_deposited", lambda: _sign_both(deals, deal_id, buyer_id, seller_id)),
            ("in_delivery", lambda: deals.mark_shipped(deal_id, seller_id)),
            ("delivered", lambda: deals.mark_delivered(deal_id, seller_id, delivery_proof="Handed over")),
            ("completed", lambda: deals.confirm_receipt(deal_id, buyer_id, rating=5)),
        ]
        for status, step in steps:
            await step()
            if status == until:
                break
        return await deals.get_deal(deal_id, buyer_id)

    return _run


async def _accept_both(deals: DealService, deal_id: str, buyer_id: str, seller_id: str) -> None:
    await deals.accept_deal(deal_id, buyer_id)
    await deals.accept_deal(deal_id, seller_id)


async def _sign_both(deals: DealService, deal_id: str, buyer_id: str, seller_id: str) -> None:
    await deals.sign_contract(deal_id, buyer_id)
    await deals.sign_contract(deal_id, seller_id)

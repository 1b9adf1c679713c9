#!/usr/bin/env python3
"""Safe Transfer: End-to-End Simulation.

Drives three scenarios through the service layer, with a buyer and a
seller acting in turn:

    Scenario 1: Happy Path
        - Buyer opens a vehicle deal for ₹50,000 and invites a new seller
        - Seller registers (claiming the invited account), both accept
        - Seller completes KYC -> documents -> payment -> contract
        - Seller ships and delivers, buyer confirms -> COMPLETED

    Scenario 2: Cancellation
        - Buyer opens a deal, seller accepts, buyer cancels -> CANCELLED
        - A late attempt to accept is refused

    Scenario 3: Dispute
        - Deal runs up to delivery, buyer raises a dispute
        - Admin takes the dispute and refunds the buyer -> REFUNDED

Usage:
    # In-memory SQLite (default, no services needed):
    uv run python simulation.py

    # Against the configured DATABASE_URL:
    uv run python simulation.py --database

    # Run a specific scenario:
    uv run python simulation.py --scenario 1
"""

from __future__ import annotations

import argparse
import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy.pool import StaticPool

# ---------------------------------------------------------------------------
# Configure structured logging BEFORE importing app modules
# ---------------------------------------------------------------------------
from safe_transfer.logging_config import get_logger, setup_logging

setup_logging(log_level="INFO", json_logs=False)
logger = get_logger("simulation")

from safe_transfer.config import get_settings  # noqa: E402
from safe_transfer.domain.deal_workflow import DealView  # noqa: E402
from safe_transfer.domain.exceptions import SafeTransferError  # noqa: E402
from safe_transfer.infrastructure.database.engine import build_engine, create_tables, make_session_factory  # noqa: E402
from safe_transfer.infrastructure.locks import InProcessLockManager  # noqa: E402
from safe_transfer.infrastructure.sms import DevSmsDispatcher  # noqa: E402
from safe_transfer.services import (  # noqa: E402
    AdminService,
    DealDraft,
    DealService,
    KycService,
    NotificationService,
    PartyService,
    PaymentService,
)
from safe_transfer.verifiers import VerifierFactory  # noqa: E402

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

    from safe_transfer.domain.ports import FileMetadata


class MemoryFileStore:
    """Keeps uploads in a dict; nothing touches the disk."""

    def __init__(self) -> None:
        self.files: dict[str, bytes] = {}

    async def store(self, data: bytes, metadata: FileMetadata) -> str:
        url = f"/uploads/{metadata.category}/{len(self.files) + 1}-{metadata.filename}"
        self.files[url] = data
        return url

    async def delete(self, url: str) -> bool:
        return self.files.pop(url, None) is not None


# ---------------------------------------------------------------------------
# Marketplace wiring
# ---------------------------------------------------------------------------
@dataclass
class Marketplace:
    """One database plus the long-lived collaborators the services share."""

    engine: AsyncEngine
    sessions: async_sessionmaker[AsyncSession]
    locks: InProcessLockManager = field(default_factory=InProcessLockManager)
    notifications: NotificationService = field(default_factory=lambda: NotificationService(DevSmsDispatcher()))
    payments: PaymentService = field(default_factory=PaymentService)
    file_store: MemoryFileStore = field(default_factory=MemoryFileStore)

    @asynccontextmanager
    async def services(self) -> AsyncIterator[tuple[DealService, KycService, AdminService, PartyService]]:
        async with self.sessions() as session:
            deals = DealService(
                session,
                locks=self.locks,
                notifications=self.notifications,
                payments=self.payments,
                file_store=self.file_store,
            )
            kyc = KycService(
                session,
                locks=self.locks,
                file_store=self.file_store,
                verifier=VerifierFactory.create("auto_approve"),
                deal_service=deals,
            )
            yield deals, kyc, AdminService(session, deals=deals, kyc=kyc), PartyService(session)


async def open_marketplace(use_database: bool = False) -> Marketplace:
    if use_database:
        engine = build_engine(get_settings().database_url)
    else:
        engine = build_engine(
            "sqlite+aiosqlite:///:memory:",
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    await create_tables(engine)
    logger.info("database.initialized", dialect=engine.dialect.name)
    return Marketplace(engine=engine, sessions=make_session_factory(engine))


# ---------------------------------------------------------------------------
# Print helpers
# ---------------------------------------------------------------------------
def banner(text: str) -> None:
    """Print a prominent banner."""
    width = 70
    print("\n" + "=" * width)
    print(f"  {text}")
    print("=" * width + "\n")


def section(text: str) -> None:
    print(f"\n--- {text} ---\n")


def show(actor: str, view: DealView) -> None:
    print(f"  [{actor}] {view.deal.deal_id}: {view.status} ({view.progress}%) next: {view.next_action}")


def print_messages(view: DealView) -> None:
    section("Deal Messages")
    for msg in view.deal.messages:
        marker = "*" if msg.is_system else " "
        print(f"  {marker} {msg.timestamp:%H:%M:%S}  {msg.text}")


# ---------------------------------------------------------------------------
# Shared steps
# ---------------------------------------------------------------------------
_phone_counter = 0


def next_phone() -> str:
    global _phone_counter
    _phone_counter += 1
    return f"98{_phone_counter:08d}"


async def register(market: Marketplace, first_name: str, phone: str, is_admin: bool = False) -> str:
    async with market.services() as (_, _, _, parties):
        party = await parties.register(phone=phone, first_name=first_name, last_name="Sim", is_admin=is_admin)
    return party.id


async def open_deal(market: Marketplace, buyer_id: str, seller_phone: str, category: str = "vehicle") -> DealView:
    draft = DealDraft(
        title="Honda City 2019 sedan",
        description="Single owner, 32,000 km, full service history.",
        category=category,
        amount=Decimal("50000"),
        delivery_method="in_person",
        role="buyer",
        counterparty_phone=seller_phone,
        counterparty_name="Ravi Seller",
    )
    async with market.services() as (deals, _, _, _):
        view = await deals.create_deal(buyer_id, draft)
    show("buyer", view)
    return view


async def complete_seller_kyc(market: Marketplace, seller_id: str) -> None:
    async with market.services() as (_, kyc, _, _):
        await kyc.update_personal_info(seller_id, {"pan_number": "abcde1234f", "aadhaar_number": "1234 5678 9012"})
        await kyc.upload_document(seller_id, "panCard", "pan.jpg", b"pan-image")
        await kyc.upload_document(seller_id, "aadhaarFront", "aadhaar.jpg", b"aadhaar-image")
        status = await kyc.submit(seller_id)
    print(f"  [seller] KYC {status.status}, {status.completion_percentage}% complete")


async def run_to_delivery(market: Marketplace, deal_id: str, buyer_id: str, seller_id: str) -> DealView:
    async with market.services() as (deals, _, _, _):
        for actor, user in (("buyer", buyer_id), ("seller", seller_id)):
            show(actor, await deals.accept_deal(deal_id, user))

    await complete_seller_kyc(market, seller_id)

    async with market.services() as (deals, _, _, _):
        await deals.upload_document(deal_id, seller_id, "ownership", "rc.pdf", b"registration-certificate")
        show("buyer", await deals.deposit_payment(deal_id, buyer_id, "upi"))
        await deals.sign_contract(deal_id, buyer_id)
        show("seller", await deals.sign_contract(deal_id, seller_id))
        show("seller", await deals.mark_shipped(deal_id, seller_id))
        view = await deals.mark_delivered(deal_id, seller_id, delivery_proof="Handed over keys and RC")
    show("seller", view)
    return view


# ===========================================================================
# Scenario 1: Happy Path
# ===========================================================================
async def scenario_1_happy_path(market: Marketplace) -> None:
    banner("SCENARIO 1: Happy Path")

    buyer_id = await register(market, "Asha", next_phone())
    seller_phone = next_phone()
    deal = await open_deal(market, buyer_id, seller_phone)

    section("Seller claims the invited account")
    seller_id = await register(market, "Ravi", seller_phone)
    assert seller_id == deal.deal.seller_id

    section("Workflow")
    await run_to_delivery(market, deal.deal.id, buyer_id, seller_id)
    async with market.services() as (deals, _, _, _):
        final = await deals.confirm_receipt(deal.deal.id, buyer_id, rating=5, feedback="Smooth handover")
    show("buyer", final)
    print_messages(final)


# ===========================================================================
# Scenario 2: Cancellation
# ===========================================================================
async def scenario_2_cancellation(market: Marketplace) -> None:
    banner("SCENARIO 2: Cancellation")

    buyer_id = await register(market, "Meera", next_phone())
    seller_phone = next_phone()
    deal = await open_deal(market, buyer_id, seller_phone, category="domain")
    seller_id = deal.deal.seller_id

    async with market.services() as (deals, _, _, _):
        show("buyer", await deals.accept_deal(deal.deal.id, buyer_id))
        show("seller", await deals.accept_deal(deal.deal.id, seller_id))
        cancelled = await deals.cancel_deal(deal.deal.id, buyer_id, reason="Found a better offer")
        show("buyer", cancelled)

        section("Late actions are refused")
        try:
            await deals.raise_dispute(deal.deal.id, seller_id, "Buyer backed out")
        except SafeTransferError as exc:
            print(f"  refused: {exc.code} {exc.message}")
    print_messages(cancelled)


# ===========================================================================
# Scenario 3: Dispute
# ===========================================================================
async def scenario_3_dispute(market: Marketplace) -> None:
    banner("SCENARIO 3: Dispute and Refund")

    admin_id = await register(market, "Admin", next_phone(), is_admin=True)
    buyer_id = await register(market, "Kiran", next_phone())
    seller_phone = next_phone()
    seller_id = await register(market, "Dev", seller_phone)
    deal = await open_deal(market, buyer_id, seller_phone)

    await run_to_delivery(market, deal.deal.id, buyer_id, seller_id)

    async with market.services() as (deals, _, admin, _):
        show("buyer", await deals.raise_dispute(deal.deal.id, buyer_id, "Odometer reading does not match"))
        await admin.assign_dispute(deal.deal.id, admin_id)
        final = await admin.resolve_dispute(deal.deal.id, admin_id, "refund", "Seller misrepresented mileage")
    show("admin", final)
    print_messages(final)


# ===========================================================================
# Main
# ===========================================================================
SCENARIOS = {
    1: scenario_1_happy_path,
    2: scenario_2_cancellation,
    3: scenario_3_dispute,
}


async def run(scenario: int = 0, use_database: bool = False) -> None:
    market = await open_marketplace(use_database=use_database)
    try:
        if scenario and scenario not in SCENARIOS:
            print(f"Unknown scenario {scenario}. Available: 1, 2, 3")
            return
        for num, func in SCENARIOS.items():
            if scenario in (0, num):
                await func(market)
        print("\n" + "=" * 70)
        print("  ALL SCENARIOS COMPLETED")
        print("=" * 70 + "\n")
    finally:
        await market.locks.close()
        await market.engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Safe Transfer Simulation")
    parser.add_argument(
        "--scenario",
        type=int,
        default=0,
        help="Run a specific scenario (1, 2, or 3). Default: run all.",
    )
    parser.add_argument(
        "--database",
        action="store_true",
        help="Use DATABASE_URL instead of in-memory SQLite.",
    )
    args = parser.parse_args()
    asyncio.run(run(scenario=args.scenario, use_database=args.database))

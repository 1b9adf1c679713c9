"""Tests for the lock manager, notification delivery and the local file store."""

from __future__ import annotations

import asyncio

import pytest
import structlog

from safe_transfer.domain.exceptions import ConcurrentModificationError
from safe_transfer.domain.ports import FileMetadata, PartyInfo
from safe_transfer.infrastructure.file_store import LocalFileStore
from safe_transfer.infrastructure.locks import InProcessLockManager, deal_lock_key, kyc_lock_key
from safe_transfer.infrastructure.sms import DevSmsDispatcher, format_phone
from safe_transfer.logging_config import setup_logging
from safe_transfer.services.notification_service import NotificationService, preview

PARTY = PartyInfo(
    id="p-1",
    first_name="Asha",
    last_name="Rao",
    phone="9876543210",
    user_type="personal",
    kyc_status="pending",
)


@pytest.fixture
def configured_logging():
    setup_logging(log_level="DEBUG", json_logs=True)
    yield
    structlog.reset_defaults()


class TestInProcessLocks:
    @pytest.mark.asyncio
    async def test_serializes_holders_of_one_key(self) -> None:
        locks = InProcessLockManager()
        order: list[str] = []

        async def worker(name: str) -> None:
            async with locks.hold("deal:1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0.01)
                order.append(f"{name}-out")

        await asyncio.gather(worker("a"), worker("b"))
        assert order in (["a-in", "a-out", "b-in", "b-out"], ["b-in", "b-out", "a-in", "a-out"])

    @pytest.mark.asyncio
    async def test_timeout_raises_concurrent_modification(self) -> None:
        locks = InProcessLockManager(blocking_timeout=0.05)
        async with locks.hold(deal_lock_key("abc")):
            with pytest.raises(ConcurrentModificationError) as exc_info:
                async with locks.hold(deal_lock_key("abc")):
                    pass
        assert (exc_info.value.entity, exc_info.value.entity_id) == ("deal", "abc")

    @pytest.mark.asyncio
    async def test_distinct_keys_do_not_block(self) -> None:
        locks = InProcessLockManager(blocking_timeout=0.05)
        async with locks.hold(kyc_lock_key("u1")):
            async with locks.hold(kyc_lock_key("u2")):
                pass

    @pytest.mark.asyncio
    async def test_released_keys_are_forgotten(self) -> None:
        locks = InProcessLockManager()
        async with locks.hold("deal:1"):
            pass
        assert locks._locks == {}


class TestNotificationService:
    def test_preview(self) -> None:
        assert preview("short") == "short"
        assert preview("x" * 100) == "x" * 100
        assert preview("x" * 101) == "x" * 100 + "..."

    @pytest.mark.asyncio
    async def test_delivers_through_dispatcher(self) -> None:
        outcome = await NotificationService(DevSmsDispatcher()).send(PARTY, "hello")
        assert outcome.delivered is True
        assert outcome.message_id.startswith("dev-")

    @pytest.mark.asyncio
    async def test_missing_party_is_skipped(self) -> None:
        assert await NotificationService(DevSmsDispatcher()).send(None, "hello") is None

    @pytest.mark.asyncio
    async def test_dispatcher_error_is_swallowed(self, failing_notifier) -> None:
        assert await NotificationService(failing_notifier).send(PARTY, "hello") is None

    @pytest.mark.asyncio
    async def test_timeout(self, hanging_notifier) -> None:
        assert await NotificationService(hanging_notifier, timeout=0.05).send(PARTY, "hello") is None

    @pytest.mark.asyncio
    async def test_delivery_is_logged_without_raising(self, configured_logging) -> None:
        outcome = await NotificationService(DevSmsDispatcher()).send(PARTY, "hello", event="deal.created")
        assert outcome.delivered is True

    @pytest.mark.asyncio
    async def test_failure_is_logged_without_raising(self, configured_logging, failing_notifier) -> None:
        service = NotificationService(failing_notifier)
        assert await service.send(PARTY, "hello", event="deal.created") is None
        assert await service.send(None, "hello", event="deal.created") is None

    def test_phone_prefix(self) -> None:
        assert format_phone("9876543210") == "+919876543210"
        assert format_phone("+919876543210") == "+919876543210"


class TestLocalFileStore:
    @pytest.mark.asyncio
    async def test_store_and_delete(self, tmp_path) -> None:
        store = LocalFileStore(tmp_path)
        url = await store.store(b"scan", FileMetadata(filename="RC.PDF", category="deals"))
        assert url.startswith("/uploads/deals/")
        assert url.endswith(".pdf")
        stored = tmp_path / "deals" / url.rsplit("/", 1)[-1]
        assert stored.read_bytes() == b"scan"

        assert await store.delete(url) is True
        assert not stored.exists()
        assert await store.delete(url) is False

    @pytest.mark.asyncio
    async def test_refuses_paths_outside_root(self, tmp_path) -> None:
        store = LocalFileStore(tmp_path / "uploads")
        assert await store.delete("/uploads/../../etc/passwd") is False
        assert await store.delete("https://example.com/file.pdf") is False

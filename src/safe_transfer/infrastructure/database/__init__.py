"""Database infrastructure: engine, ORM models, and repositories."""

from safe_transfer.infrastructure.database.engine import (
    close_db,
    get_async_session,
    get_session_factory,
    init_db,
)
from safe_transfer.infrastructure.database.orm_models import (
    Base,
    Counter,
    Deal,
    KycRecordRow,
    Party,
)
from safe_transfer.infrastructure.database.repositories import (
    CounterRepository,
    DealRepository,
    KycRepository,
    PartyRepository,
)

__all__ = [
    "Base",
    "Counter",
    "Deal",
    "KycRecordRow",
    "Party",
    "CounterRepository",
    "DealRepository",
    "KycRepository",
    "PartyRepository",
    "close_db",
    "get_async_session",
    "get_session_factory",
    "init_db",
]

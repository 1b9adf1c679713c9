"""Collaborator interfaces used by the services.

The services only talk to parties, notification channels and file storage
through these protocols. Production adapters live in infrastructure/;
tests substitute in-memory fakes.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable


@dataclass(frozen=True)
class PartyInfo:
    """The slice of a party record the core needs."""

    id: str
    first_name: str
    last_name: str
    phone: str
    user_type: str
    kyc_status: str
    phone_verified: bool = True
    is_admin: bool = False
    is_claimed: bool = True

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


@dataclass(frozen=True)
class NotificationOutcome:
    delivered: bool
    message_id: str | None = None
    error: str | None = None


@dataclass(frozen=True)
class FileMetadata:
    filename: str
    content_type: str | None = None
    owner_id: str | None = None
    category: str | None = None


@runtime_checkable
class PartyDirectory(Protocol):
    async def get(self, party_id: str) -> PartyInfo | None: ...

    async def find_by_contact(self, phone: str) -> PartyInfo | None: ...

    async def provision(self, phone: str, name: str | None) -> PartyInfo:
        """Create an unclaimed placeholder party with an unverified phone."""
        ...

    async def set_kyc_status(self, party_id: str, status: str) -> None: ...


@runtime_checkable
class Authorizer(Protocol):
    async def is_admin(self, user_id: str) -> bool: ...


@runtime_checkable
class NotificationDispatcher(Protocol):
    async def notify(self, party: PartyInfo, message: str) -> NotificationOutcome:
        """Deliver ``message`` to ``party``.

        May raise NotificationError; callers treat delivery as best-effort.
        """
        ...


@runtime_checkable
class FileStore(Protocol):
    async def store(self, data: bytes, metadata: FileMetadata) -> str:
        """Persist ``data`` and return a URL that can later be deleted."""
        ...

    async def delete(self, url: str) -> bool:
        """Remove a stored file. Returns False when nothing was removed."""
        ...

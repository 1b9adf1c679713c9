"""SQL-backed PartyDirectory and Authorizer."""

from __future__ import annotations

from typing import TYPE_CHECKING

from safe_transfer.domain.enums import KycStatus, PartyKind
from safe_transfer.domain.exceptions import PartyNotFoundError
from safe_transfer.domain.ports import PartyInfo
from safe_transfer.infrastructure.database.orm_models import Party
from safe_transfer.infrastructure.database.repositories import PartyRepository
from safe_transfer.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)


def to_party_info(party: Party) -> PartyInfo:
    return PartyInfo(
        id=str(party.id),
        first_name=party.first_name,
        last_name=party.last_name,
        phone=party.phone,
        user_type=party.user_type,
        kyc_status=party.kyc_status,
        phone_verified=party.phone_verified,
        is_admin=party.is_admin,
        is_claimed=party.is_claimed,
    )


def split_name(name: str | None, fallback: str) -> tuple[str, str]:
    """'Asha Devi Rao' -> ('Asha', 'Devi Rao'); empty -> (fallback, 'User')."""
    parts = (name or "").split()
    if not parts:
        return fallback, "User"
    return parts[0], " ".join(parts[1:]) or "User"


class SqlPartyDirectory:
    def __init__(self, session: AsyncSession) -> None:
        self._repo = PartyRepository(session)

    async def get(self, party_id: str) -> PartyInfo | None:
        party = await self._repo.get_by_id(party_id)
        return to_party_info(party) if party is not None else None

    async def get_many(self, party_ids: list[str]) -> dict[str, PartyInfo]:
        return {pid: to_party_info(p) for pid, p in (await self._repo.get_many(party_ids)).items()}

    async def find_by_contact(self, phone: str) -> PartyInfo | None:
        party = await self._repo.get_by_phone(phone)
        return to_party_info(party) if party is not None else None

    async def provision(self, phone: str, name: str | None, fallback_name: str = "User") -> PartyInfo:
        first_name, last_name = split_name(name, fallback_name)
        party = await self._repo.create(
            Party(
                first_name=first_name,
                last_name=last_name,
                phone=phone,
                user_type=PartyKind.PERSONAL.value,
                phone_verified=False,
                kyc_status=KycStatus.PENDING.value,
                is_claimed=False,
            )
        )
        logger.info("party.provisioned", party_id=str(party.id), phone=phone)
        return to_party_info(party)

    async def set_kyc_status(self, party_id: str, status: str) -> None:
        party = await self._repo.get_by_id(party_id)
        if party is None:
            raise PartyNotFoundError(party_id)
        await self._repo.update_kyc_status(party, status)

    async def is_admin(self, user_id: str) -> bool:
        party = await self._repo.get_by_id(user_id)
        return bool(party and party.is_admin)

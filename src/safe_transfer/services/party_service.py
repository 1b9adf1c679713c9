"""Party Service: registration and lookup of buyers and sellers.

Registering with a phone number that a deal invitation already provisioned
claims the placeholder, so the deals it was invited to stay attached.
"""

from __future__ import annotations

import re
from typing import TYPE_CHECKING

from safe_transfer.domain.enums import PartyKind
from safe_transfer.domain.exceptions import PartyNotFoundError, ValidationError
from safe_transfer.infrastructure.database.orm_models import Party
from safe_transfer.infrastructure.database.repositories import PartyRepository
from safe_transfer.infrastructure.party_directory import to_party_info
from safe_transfer.logging_config import get_logger

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from safe_transfer.domain.ports import PartyInfo

logger = get_logger(__name__)

PHONE_PATTERN = re.compile(r"^[6-9][0-9]{9}$")


class PartyService:
    def __init__(self, session: AsyncSession) -> None:
        self._session = session
        self._repo = PartyRepository(session)

    async def register(
        self,
        phone: str,
        first_name: str,
        last_name: str = "",
        user_type: str = PartyKind.PERSONAL,
        is_admin: bool = False,
    ) -> PartyInfo:
        errors: list[dict[str, str]] = []
        if not PHONE_PATTERN.match(phone or ""):
            errors.append({"field": "phone", "message": "Please provide a valid Indian phone number"})
        if not (first_name or "").strip() or len(first_name.strip()) > 50:
            errors.append({"field": "first_name", "message": "First name must be between 1 and 50 characters"})
        if len((last_name or "").strip()) > 50:
            errors.append({"field": "last_name", "message": "Last name cannot exceed 50 characters"})
        if user_type not in PartyKind.__members__.values():
            errors.append({"field": "user_type", "message": "User type must be personal or business"})
        if errors:
            raise ValidationError(errors)

        try:
            existing = await self._repo.get_by_phone(phone)
            if existing is not None and existing.is_claimed:
                raise ValidationError.for_field("phone", "Phone number is already registered")
            if existing is not None:
                party = await self._repo.claim(existing, first_name.strip(), (last_name or "").strip(), user_type)
                logger.info("party.claimed", party_id=str(party.id))
            else:
                party = await self._repo.create(
                    Party(
                        first_name=first_name.strip(),
                        last_name=(last_name or "").strip(),
                        phone=phone,
                        user_type=str(user_type),
                        phone_verified=True,
                        is_admin=is_admin,
                        is_claimed=True,
                    )
                )
                logger.info("party.registered", party_id=str(party.id), user_type=str(user_type))
            await self._session.commit()
        except Exception:
            await self._session.rollback()
            raise
        return to_party_info(party)

    async def get(self, party_id: str) -> PartyInfo:
        party = await self._repo.get_by_id(party_id)
        if party is None:
            raise PartyNotFoundError(party_id)
        return to_party_info(party)

"""FastAPI dependency injection providers.

These are used with Depends() in route handlers to inject database sessions,
the caller's identity and the application services. Long-lived
collaborators (lock manager, notifier, file store, payments, verifier) are
created in the lifespan and kept on ``app.state``.
"""

from __future__ import annotations

from collections.abc import AsyncGenerator

from fastapi import Depends, Header, Request
from sqlalchemy.ext.asyncio import AsyncSession

from safe_transfer.config import Settings, get_settings
from safe_transfer.domain.exceptions import AuthorizationError
from safe_transfer.infrastructure.database.engine import get_async_session
from safe_transfer.services.admin_service import AdminService
from safe_transfer.services.deal_service import DealService
from safe_transfer.services.kyc_service import KycService
from safe_transfer.services.party_service import PartyService


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield an async database session for a request."""
    async for session in get_async_session():
        yield session


def get_current_user_id(x_user_id: str | None = Header(default=None, alias="X-User-Id")) -> str:
    """Caller identity. Token issuance is handled upstream; the gateway sets this header."""
    if not x_user_id:
        raise AuthorizationError("Missing X-User-Id header")
    return x_user_id


def get_client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else None


def get_deal_service(request: Request, session: AsyncSession = Depends(get_db_session)) -> DealService:
    state = request.app.state
    return DealService(
        session,
        locks=state.locks,
        notifications=state.notifications,
        payments=state.payments,
        file_store=state.file_store,
    )


def get_kyc_service(
    request: Request,
    session: AsyncSession = Depends(get_db_session),
    deals: DealService = Depends(get_deal_service),
) -> KycService:
    state = request.app.state
    return KycService(
        session,
        locks=state.locks,
        file_store=state.file_store,
        verifier=state.verifier,
        deal_service=deals,
        validity_days=state.settings.kyc_validity_days,
    )


def get_admin_service(
    session: AsyncSession = Depends(get_db_session),
    deals: DealService = Depends(get_deal_service),
    kyc: KycService = Depends(get_kyc_service),
) -> AdminService:
    return AdminService(session, deals=deals, kyc=kyc)


def get_party_service(session: AsyncSession = Depends(get_db_session)) -> PartyService:
    return PartyService(session)


def get_app_settings() -> Settings:
    """Provide the application settings."""
    return get_settings()

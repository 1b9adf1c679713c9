"""Health check endpoint.

Verifies database connectivity and reports the lock backend in use.
Used by Docker healthchecks, load balancers, and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from safe_transfer import __version__
from safe_transfer.api.deps import get_db_session
from safe_transfer.infrastructure.locks import RedisLockManager
from safe_transfer.logging_config import get_logger
from safe_transfer.schemas.common import HealthResponse

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(request: Request, session: AsyncSession = Depends(get_db_session)) -> HealthResponse:
    db_status = "unknown"
    try:
        await session.execute(text("SELECT 1"))
        db_status = "healthy"
    except SQLAlchemyError as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    locks = getattr(request.app.state, "locks", None)
    if locks is None:
        lock_status = "not initialized"
    elif isinstance(locks, RedisLockManager):
        lock_status = "redis"
    else:
        lock_status = "memory"

    return HealthResponse(
        status="ok" if db_status == "healthy" else "degraded",
        version=__version__,
        database=db_status,
        locks=lock_status,
    )

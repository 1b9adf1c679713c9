"""FastAPI application entry point for Safe Transfer.

Lifecycle:
    1. Startup: Initialize logging, database (create tables when enabled),
       the entity lock manager and the collaborators kept on ``app.state``.
    2. Running: Serve the REST API at /api/v1/*.
    3. Shutdown: Close the lock backend and database connections.

Run with:
    uv run uvicorn safe_transfer.main:app --reload --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI

from safe_transfer import __version__
from safe_transfer.config import get_settings
from safe_transfer.logging_config import get_logger, setup_logging

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage application startup and shutdown lifecycle."""
    settings = get_settings()

    # 1. Setup structured logging
    setup_logging(
        log_level=settings.app_log_level,
        json_logs=not settings.is_development,
    )
    logger = get_logger(__name__)
    logger.info("app.starting", env=settings.app_env, debug=settings.app_debug)

    # 2. Initialize database
    from safe_transfer.infrastructure.database.engine import close_db, init_db

    await init_db()

    # 3. Locks and collaborators
    from safe_transfer.infrastructure.file_store import LocalFileStore
    from safe_transfer.infrastructure.locks import build_lock_manager
    from safe_transfer.infrastructure.sms import DevSmsDispatcher
    from safe_transfer.services.notification_service import NotificationService
    from safe_transfer.services.payment_service import PaymentService
    from safe_transfer.verifiers import VerifierFactory

    app.state.settings = settings
    app.state.locks = await build_lock_manager(settings)
    app.state.notifications = NotificationService(DevSmsDispatcher(), timeout=settings.notification_timeout_seconds)
    app.state.payments = PaymentService(simulate=settings.payment_simulate)
    app.state.file_store = LocalFileStore(settings.upload_dir)
    app.state.verifier = VerifierFactory.create(settings.kyc_verifier)

    logger.info(
        "app.started",
        host=settings.app_host,
        port=settings.app_port,
        lock_backend=settings.lock_backend,
        kyc_verifier=settings.kyc_verifier,
    )

    yield

    # Shutdown
    logger.info("app.shutting_down")
    await app.state.locks.close()
    await close_db()
    logger.info("app.stopped")


def create_app() -> FastAPI:
    """Application factory: creates and configures the FastAPI app."""
    settings = get_settings()

    app = FastAPI(
        title="Safe Transfer",
        description="Escrow marketplace API: deals, KYC verification and admin review.",
        version=__version__,
        lifespan=lifespan,
        debug=settings.app_debug,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # --- Middleware ---
    from safe_transfer.api.middleware import setup_middleware

    setup_middleware(app)

    # --- REST API Routes ---
    from safe_transfer.api.routes.admin import router as admin_router
    from safe_transfer.api.routes.deals import router as deals_router
    from safe_transfer.api.routes.health import router as health_router
    from safe_transfer.api.routes.kyc import router as kyc_router
    from safe_transfer.api.routes.parties import router as parties_router

    app.include_router(health_router)
    app.include_router(parties_router)
    app.include_router(deals_router)
    app.include_router(kyc_router)
    app.include_router(admin_router)

    return app


# The app instance used by Uvicorn
app = create_app()

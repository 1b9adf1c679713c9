"""FastAPI middleware for request tracing, error handling, and CORS.

Middleware stack (applied bottom-up):
    1. RequestIDMiddleware - X-Request-ID on every response; request and caller ids bound for logging
    2. ErrorHandlerMiddleware - catches domain exceptions -> structured JSON errors
    3. CORSMiddleware - origins from the ``cors_origins`` setting
"""

from __future__ import annotations

import uuid
from typing import TYPE_CHECKING

import structlog
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from safe_transfer.config import get_settings
from safe_transfer.domain.exceptions import (
    AuthorizationError,
    ConcurrentModificationError,
    ExternalServiceError,
    InvalidStateError,
    NotFoundError,
    PreconditionError,
    SafeTransferError,
    ValidationError,
)

if TYPE_CHECKING:
    from fastapi import FastAPI, Request, Response

logger = structlog.get_logger(__name__)

# Checked in order; subclasses before their bases.
_STATUS_CODES: tuple[tuple[type[SafeTransferError], int], ...] = (
    (ValidationError, 400),
    (AuthorizationError, 403),
    (NotFoundError, 404),
    (InvalidStateError, 409),
    (ConcurrentModificationError, 409),
    (PreconditionError, 412),
    (ExternalServiceError, 502),
)


def error_response(exc: SafeTransferError) -> JSONResponse:
    """Translate a domain exception into ``{error, message[, errors]}``."""
    status_code = next((code for cls, code in _STATUS_CODES if isinstance(exc, cls)), 400)
    content: dict = {"error": exc.code, "message": exc.message}
    if isinstance(exc, ValidationError):
        content["errors"] = exc.errors
    return JSONResponse(status_code=status_code, content=content)


# ---------------------------------------------------------------------------
# 1. Request ID Middleware
# ---------------------------------------------------------------------------
class RequestIDMiddleware(BaseHTTPMiddleware):
    """Inject a unique X-Request-ID into every request for log correlation."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4()))

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)
        user_id = request.headers.get("X-User-Id")
        if user_id:
            structlog.contextvars.bind_contextvars(user_id=user_id)

        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response


# ---------------------------------------------------------------------------
# 2. Error Handler Middleware
# ---------------------------------------------------------------------------
class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Catch domain exceptions and return structured JSON error responses."""

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        try:
            return await call_next(request)
        except InvalidStateError as exc:
            logger.warning("deal.invalid_state", current=exc.current_state, attempted=exc.attempted)
            return error_response(exc)
        except ConcurrentModificationError as exc:
            logger.warning("request.conflict", entity=exc.entity, entity_id=exc.entity_id)
            return error_response(exc)
        except (ValidationError, AuthorizationError, NotFoundError, PreconditionError) as exc:
            logger.info("request.rejected", code=exc.code, error=exc.message)
            return error_response(exc)
        except SafeTransferError as exc:
            logger.error("domain.error", error=exc.message, code=exc.code)
            return error_response(exc)
        except Exception as exc:
            logger.exception("unhandled.error", error=str(exc))
            return JSONResponse(
                status_code=500,
                content={
                    "error": "INTERNAL_ERROR",
                    "message": "An unexpected error occurred",
                },
            )


# ---------------------------------------------------------------------------
# Setup function
# ---------------------------------------------------------------------------
def setup_middleware(app: FastAPI) -> None:
    """Register all middleware on the FastAPI application.

    Order matters: middleware is applied bottom-up, so the last added
    middleware runs first.
    """
    # CORS (runs first)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=get_settings().cors_origin_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Error handling (runs second)
    app.add_middleware(ErrorHandlerMiddleware)

    # Request ID (runs last = outermost)
    app.add_middleware(RequestIDMiddleware)

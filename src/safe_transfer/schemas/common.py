"""Schemas shared by every router."""

from __future__ import annotations

from pydantic import BaseModel, Field


class FieldErrorResponse(BaseModel):
    field: str
    message: str


class ErrorResponse(BaseModel):
    """Body of every 4xx/5xx response produced by the error middleware."""

    error: str = Field(description="Machine-readable error code, e.g. INVALID_STATE")
    message: str
    errors: list[FieldErrorResponse] | None = None


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    version: str = "0.1.0"
    database: str = "unknown"
    locks: str = "unknown"

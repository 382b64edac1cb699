"""
DocVault Backend - Shared Response Schemas
===========================================

Error and health payloads used across routers.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ErrorResponse(BaseModel):
    """
    What:  Body of every non-2xx response produced by the exception handlers.
    Why:   One shape for every error so clients parse failures uniformly.
    """

    error: str = Field(description="Machine-readable error code, e.g. 'validation_error'")
    message: str = Field(description="Human-readable description")
    details: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Extra context (validation errors only)",
    )
    request_id: str = Field(default="", description="Echo of X-Request-ID")


class HealthResponse(BaseModel):
    status: str = Field(description="'ok' when the store answers, 'error' otherwise")
    version: str
    database: str = Field(description="'connected' or 'disconnected'")
    uptime_seconds: float

"""
DocVault Backend - Health Check Route
======================================

What:  GET /health for container probes and load balancers.
How:   Round-trips SELECT 1 through the app's Database handle.

    ok    → store reachable (HTTP 200)
    error → store unreachable (HTTP 503, stop routing traffic)

Public and unaudited.
"""

import logging
import time

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

from docvault import __version__
from docvault.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Store unreachable", "model": HealthResponse}},
    summary="Service health check",
)
async def health_check(request: Request):
    health = HealthResponse(
        status="ok",
        version=__version__,
        database="connected",
        uptime_seconds=round(time.time() - _start_time, 2),
    )

    try:
        await request.app.state.database.ping()
    except Exception as e:
        logger.warning("Health check: database unreachable: %s", str(e))
        health.status = "error"
        health.database = "disconnected"
        return JSONResponse(status_code=503, content=health.model_dump())

    return health

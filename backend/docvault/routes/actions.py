"""
DocVault Backend - Audit Log Route
===================================

What:  POST /actions/find, a read-only query over the audit trail.
Who:   Operators and dashboards holding a bearer token.

The query itself is audited like any other request under /actions.
Defaults: newest first, 100 records, at most 1000.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.database import get_db_session
from docvault.schemas.actions import ActionListResponse
from docvault.schemas.common import ErrorResponse
from docvault.schemas.documents import FindRequest
from docvault.security import require_identity
from docvault.services.audit_service import AuditLogService

router = APIRouter(
    prefix="/actions",
    tags=["Audit"],
    dependencies=[Depends(require_identity)],
    responses={
        400: {"description": "Malformed filter", "model": ErrorResponse},
        401: {"description": "Missing or invalid bearer token", "model": ErrorResponse},
    },
)


@router.post(
    "/find",
    response_model=ActionListResponse,
    summary="Query audit records",
    description=(
        "Filters use the same operators as document queries. Top-level fields are "
        "the audit columns (username, method, path, status_code, timestamp, ...); "
        "params.*, query.* and body.* address the captured request data."
    ),
)
async def find_actions(
    payload: Optional[FindRequest] = None,
    db: AsyncSession = Depends(get_db_session),
) -> ActionListResponse:
    payload = payload or FindRequest()
    actions = await AuditLogService(db).find(
        filter=payload.filter,
        projection=payload.projection,
        sort=payload.sort,
        limit=payload.limit,
        skip=payload.skip,
    )
    return ActionListResponse(count=len(actions), actions=actions)

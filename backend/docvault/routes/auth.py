"""
DocVault Backend - Login Route
===============================

What:  POST /auth/login exchanges a username/password for a bearer token.
Why:   Clients obtain the token that /api and /actions require.

Public route; not under an audited prefix.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from docvault.database import get_db_session
from docvault.schemas.auth import LoginRequest, LoginResponse, LoginUser
from docvault.schemas.common import ErrorResponse
from docvault.security import TokenService, get_token_service
from docvault.services.auth_service import AuthService

router = APIRouter(prefix="/auth", tags=["Auth"])


@router.post(
    "/login",
    response_model=LoginResponse,
    responses={
        400: {"description": "username or password missing", "model": ErrorResponse},
        401: {"description": "Invalid credentials", "model": ErrorResponse},
    },
    summary="Obtain a bearer token",
)
async def login(
    payload: Optional[LoginRequest] = None,
    db: AsyncSession = Depends(get_db_session),
    tokens: TokenService = Depends(get_token_service),
) -> LoginResponse:
    payload = payload or LoginRequest()
    token, user = await AuthService(db, tokens).login(payload.username, payload.password)
    return LoginResponse(token=token, user=LoginUser(username=user.username, email=user.email))
